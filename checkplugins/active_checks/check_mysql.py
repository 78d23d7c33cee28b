#!/usr/bin/env python3
# Copyright (C) 2024 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""check_mysql - Monitor replication, connections, uptime and read-only state of MySQL"""

import argparse
import configparser
import logging
import os
import re
import ssl
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from pydantic import BaseModel

from checkplugins.utils.exceptions import ConfigError, ConnectError, ParseError, ScanError
from checkplugins.utils.log import setup_console_logging
from checkplugins.utils.statename import State

from checkplugins.active_checks.utils import (
    add_logging_arguments,
    CheckResult,
    PluginArgumentParser,
    run_check,
)

logger = logging.getLogger("checkplugins.active_checks.mysql")

# First release knowing SHOW REPLICA STATUS and the renamed columns
_REPLICA_STATUS_VERSION = (8, 0, 22)

_VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


class MySQLVersion(NamedTuple):
    major: int
    minor: int
    patch: int


def parse_version(raw_version: str) -> MySQLVersion:
    """Parse the leading dotted triple of a version string

    >>> parse_version("5.5.44-0+deb8u1-log")
    MySQLVersion(major=5, minor=5, patch=44)
    >>> parse_version("8.0")
    Traceback (most recent call last):
    ...
    checkplugins.utils.exceptions.ParseError: Failed to parse version: '8.0'
    """
    if (match := _VERSION_RE.match(raw_version)) is None:
        raise ParseError("Failed to parse version: %r" % raw_version)
    return MySQLVersion(*(int(part) for part in match.groups()))


class MySQLSettings(BaseModel):
    host: str
    port: str
    socket: str
    user: str
    password: str
    config: str
    profile: str
    tls: bool
    tls_root_cert: str
    tls_skip_verify: bool


def add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-H", "--host", default="localhost", help="Hostname")
    parser.add_argument("-p", "--port", default="3306", help="Port")
    parser.add_argument("-S", "--socket", default="", help="Path to unix socket")
    parser.add_argument("-u", "--user", default="root", help="Username")
    parser.add_argument(
        "-P",
        "--password",
        default=os.environ.get("MYSQL_PASSWORD", ""),
        help="Password (Default: $MYSQL_PASSWORD)",
    )
    parser.add_argument("--config", default="", help="use config my.cnf format file")
    parser.add_argument("--profile", default="client", help="my.cnf profile to use")
    parser.add_argument("--tls", action="store_true", help="Enables TLS connection")
    parser.add_argument(
        "--tls-root-cert",
        default="",
        help="The root certificate used for TLS certificate verification",
    )
    parser.add_argument(
        "--tls-skip-verify", action="store_true", help="Disable TLS certificate verification"
    )


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def read_cnf(settings: MySQLSettings) -> MySQLSettings:
    """Override the connection settings with the values of a my.cnf profile"""
    # "!include" directives and options without a value are valid in a my.cnf
    parser = configparser.ConfigParser(
        allow_no_value=True,
        strict=False,
        interpolation=None,
        comment_prefixes=("#", ";", "!"),
    )
    try:
        parser.read(settings.config, encoding="utf-8")
    except (configparser.Error, UnicodeDecodeError) as e:
        raise ConfigError("cannot read %s: %s" % (settings.config, e)) from e

    for section_name in parser.sections():
        if section_name.lower() != settings.profile.lower():
            continue

        section = parser[section_name]
        overrides = {
            key: _unquote(value)
            for key, value in (
                ("host", section.get("host")),
                ("port", section.get("port")),
                ("socket", section.get("socket")),
                ("user", section.get("user")),
                ("password", section.get("password")),
            )
            if value
        }
        logger.debug("Using %s from profile %s", ", ".join(sorted(overrides)), section_name)
        return settings.model_copy(update=overrides)

    raise ConfigError("cannot find profile %s in %s" % (settings.profile, settings.config))


def _tls_options(settings: MySQLSettings) -> dict[str, Any]:
    if not settings.tls:
        return {}

    options: dict[str, Any] = {
        "ssl_mode": "REQUIRED" if settings.tls_skip_verify else "VERIFY_IDENTITY",
    }
    if settings.tls_root_cert:
        try:
            with open(settings.tls_root_cert, "rb"):
                pass
        except OSError as e:
            raise ConfigError("cannot read %s: %s" % (settings.tls_root_cert, e)) from e
        options["ssl"] = {"ca": settings.tls_root_cert}
    elif not settings.tls_skip_verify:
        # Verify against the trust store of the system
        default_paths = ssl.get_default_verify_paths()
        if default_paths.cafile:
            options["ssl"] = {"ca": default_paths.cafile}
        elif default_paths.capath:
            options["ssl"] = {"capath": default_paths.capath}
        else:
            raise ConfigError("no system CA certificates found, use --tls-root-cert")
    return options


def connection_options(settings: MySQLSettings) -> dict[str, Any]:
    """Build the keyword arguments for MySQLdb.connect

    >>> settings = MySQLSettings(host="db", port="3307", socket="", user="nagios",
    ...     password="secret", config="", profile="client", tls=False, tls_root_cert="",
    ...     tls_skip_verify=False)
    >>> sorted(connection_options(settings).items())
    [('host', 'db'), ('passwd', 'secret'), ('port', 3307), ('user', 'nagios')]
    """
    if settings.config:
        settings = read_cnf(settings)

    options: dict[str, Any] = {"user": settings.user, "passwd": settings.password}
    if settings.socket:
        options["unix_socket"] = settings.socket
    else:
        try:
            options["port"] = int(settings.port)
        except ValueError as e:
            raise ConfigError("invalid port: %s" % settings.port) from e
        options["host"] = settings.host

    options.update(_tls_options(settings))
    return options


def connect(settings: MySQLSettings) -> Any:
    options = connection_options(settings)

    import MySQLdb  # pylint: disable=import-outside-toplevel

    logger.info(
        "Connecting to %s as %s",
        options.get("unix_socket") or "%s:%s" % (options["host"], options["port"]),
        settings.user,
    )
    try:
        return MySQLdb.connect(**options)
    except MySQLdb.Error as e:
        raise ConnectError(str(e)) from e


def _query(connection: Any, statement: str) -> Sequence[Mapping[str, Any]]:
    import MySQLdb.cursors  # pylint: disable=import-outside-toplevel

    logger.debug("Query: %s", statement)
    try:
        cursor = connection.cursor(MySQLdb.cursors.DictCursor)
        try:
            cursor.execute(statement)
            return list(cursor.fetchall())
        finally:
            cursor.close()
    except MySQLdb.Error as e:
        raise ScanError("Failed to query %s: %s" % (statement, e)) from e


def _query_value(connection: Any, statement: str) -> Any:
    rows = _query(connection, statement)
    if not rows:
        raise ScanError("Empty result for %s" % statement)
    return next(iter(rows[0].values()))


def _global_status(connection: Any, variable: str) -> int:
    rows = _query(connection, "SHOW GLOBAL STATUS LIKE '%s'" % variable)
    if not rows:
        raise ScanError("Status variable %s not found" % variable)
    return int(rows[0]["Value"])


def get_version(connection: Any) -> tuple[MySQLVersion, str]:
    raw_version = str(_query_value(connection, "SELECT VERSION()"))
    return parse_version(raw_version), raw_version


def _column(row: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in row:
            return row[name]
    raise ScanError("Missing column %s in replication status" % names[0])


def check_replication(args: argparse.Namespace, connection: Any) -> CheckResult:
    version, raw_version = get_version(connection)
    # MariaDB uses its own numbering, starting at 10
    if version >= _REPLICA_STATUS_VERSION and "mariadb" not in raw_version.lower():
        rows = _query(connection, "SHOW REPLICA STATUS")
    else:
        rows = _query(connection, "SHOW SLAVE STATUS")

    if not rows:
        return CheckResult(State.OK, "MySQL is not slave")

    row = rows[0]
    io_running = _column(row, "Replica_IO_Running", "Slave_IO_Running")
    sql_running = _column(row, "Replica_SQL_Running", "Slave_SQL_Running")
    if io_running != "Yes" or sql_running != "Yes":
        return CheckResult(
            State.CRIT,
            "MySQL replication is not running: IO thread %s, SQL thread %s"
            % (io_running, sql_running),
        )

    behind = _column(row, "Seconds_Behind_Source", "Seconds_Behind_Master")
    if behind is None:
        return CheckResult(State.UNKNOWN, "MySQL replication lag is unknown")

    behind = int(behind)
    summary = "MySQL replication behind master %d seconds" % behind
    if behind > args.critical:
        return CheckResult(State.CRIT, summary)
    if behind > args.warning:
        return CheckResult(State.WARN, summary)
    return CheckResult(State.OK, summary)


def check_connection(args: argparse.Namespace, connection: Any) -> CheckResult:
    threads_connected = _global_status(connection, "Threads_connected")
    summary = "connection: %d" % threads_connected
    if threads_connected > args.critical:
        return CheckResult(State.CRIT, summary)
    if threads_connected > args.warning:
        return CheckResult(State.WARN, summary)
    return CheckResult(State.OK, summary)


def render_uptime(seconds: int) -> str:
    """
    >>> render_uptime(93784)
    '1 days, 02:03:04'
    """
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    return "%d days, %02d:%02d:%02d" % (days, hours, minutes, seconds)


def check_uptime(args: argparse.Namespace, connection: Any) -> CheckResult:
    uptime = _global_status(connection, "Uptime")
    summary = "up %s" % render_uptime(uptime)
    if uptime < args.critical:
        return CheckResult(State.CRIT, summary)
    if uptime < args.warning:
        return CheckResult(State.WARN, summary)
    return CheckResult(State.OK, summary)


def check_readonly(args: argparse.Namespace, connection: Any) -> CheckResult:
    current = "on" if int(_query_value(connection, "SELECT @@global.read_only")) else "off"
    if current != args.expected:
        return CheckResult(
            State.CRIT,
            "the expected value of read_only is %s but %s" % (args.expected, current),
        )
    return CheckResult(State.OK, "read_only is %s" % current)


def _levels_arguments(
    warning: int, critical: int, unit: str
) -> Callable[[argparse.ArgumentParser], None]:
    def add_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "-w", "--warning", type=int, default=warning, help=f"Warning level ({unit})"
        )
        parser.add_argument(
            "-c", "--critical", type=int, default=critical, help=f"Critical level ({unit})"
        )

    return add_arguments


def _readonly_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "expected", choices=["on", "off"], help="Expected value of the read_only variable"
    )


@dataclass(frozen=True)
class Command:
    add_arguments: Callable[[argparse.ArgumentParser], None]
    check: Callable[[argparse.Namespace, Any], CheckResult]


COMMANDS: Mapping[str, Command] = {
    "replication": Command(_levels_arguments(5, 10, "seconds behind master"), check_replication),
    "connection": Command(_levels_arguments(250, 280, "connections"), check_connection),
    "uptime": Command(_levels_arguments(0, 0, "uptime seconds below"), check_uptime),
    "readonly": Command(_readonly_arguments, check_readonly),
}


def separate_subcommand(argv: Sequence[str]) -> tuple[str, Sequence[str]]:
    """
    >>> separate_subcommand(["uptime", "-H", "db"])
    ('uptime', ['-H', 'db'])
    >>> separate_subcommand(["-H", "db"])
    ('', ['-H', 'db'])
    """
    if not argv or argv[0].startswith("-"):
        return "", list(argv)
    return argv[0], list(argv[1:])


def check_name(subcommand: str) -> str:
    return "MySQL %s" % subcommand.capitalize()


def usage() -> str:
    return "Usage:\n  check-mysql [subcommand] [OPTIONS]\n\nSubCommands:\n%s\n" % "\n".join(
        "  %s" % name for name in COMMANDS
    )


def run_command(
    command: Command, args: argparse.Namespace, settings: MySQLSettings
) -> CheckResult:
    connection = connect(settings)
    try:
        return command.check(args, connection)
    finally:
        connection.close()


def main(sys_argv: Sequence[str] | None = None) -> int:
    if sys_argv is None:
        sys_argv = sys.argv[1:]

    subcommand, argv = separate_subcommand(sys_argv)
    if (command := COMMANDS.get(subcommand)) is None:
        sys.stdout.write(usage())
        return int(State.UNKNOWN)

    parser = PluginArgumentParser(prog="check-mysql %s" % subcommand, description=__doc__)
    add_connection_arguments(parser)
    command.add_arguments(parser)
    add_logging_arguments(parser)
    args = parser.parse_args(argv)

    setup_console_logging(args.verbose, args.debug)

    settings = MySQLSettings.model_validate(
        {name: getattr(args, name) for name in MySQLSettings.model_fields}
    )

    return run_check(
        check_name(subcommand), lambda: run_command(command, args, settings), debug=args.debug
    )


if __name__ == "__main__":
    sys.exit(main())
