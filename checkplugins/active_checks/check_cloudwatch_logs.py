#!/usr/bin/env python3
# Copyright (C) 2024 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""check_cloudwatch_logs - Count log events of a CloudWatch Logs group matching a pattern

Every run only looks at the events that arrived since the previous run. The
position of the scan is kept in a state file below the state directory, one
file per log group and command line.
"""

import logging
import os
import sys
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Protocol

import boto3
import botocore.exceptions
from pydantic import BaseModel

from checkplugins.utils.exceptions import ConfigError, ConnectError, ScanError
from checkplugins.utils.log import setup_console_logging
from checkplugins.utils.paths import plugin_state_dir
from checkplugins.utils.scan_cursor import CursorStore, ScanCursor
from checkplugins.utils.statename import State

from checkplugins.active_checks.utils import (
    add_logging_arguments,
    CheckResult,
    PluginArgumentParser,
    run_check,
)

CHECK_NAME = "CloudWatch Logs"
_STATE_DIR_NAME = "check-cloudwatch-logs"

# Error codes of the AWS API which tell us that we are not allowed in at all
_ACCESS_ERROR_CODES = frozenset(
    [
        "AccessDeniedException",
        "ExpiredTokenException",
        "InvalidClientTokenId",
        "InvalidSignatureException",
        "UnrecognizedClientException",
    ]
)

logger = logging.getLogger("checkplugins.active_checks.cloudwatch_logs")


@dataclass(frozen=True)
class ScanPolicy:
    # A stored cursor older than this is dropped, we do not want to page
    # through hours of old events after the check has been paused.
    max_state_age: timedelta = timedelta(hours=1)
    # Size of the time window looked at when there is no usable cursor
    initial_window: timedelta = timedelta(minutes=1)
    # Pause between two dependent page requests (API rate limit)
    page_delay: timedelta = timedelta(milliseconds=250)


@dataclass(frozen=True)
class MatchEvent:
    message: str
    timestamp: int


class Args(BaseModel):
    region: None | str
    access_key_id: None | str
    secret_access_key: None | str
    log_group_name: str
    pattern: str
    warning_over: int
    critical_over: int
    state_dir: None | str
    return_content: bool
    state_max_age: int
    initial_window: int
    page_delay: int
    debug: bool
    verbose: int

    def scan_policy(self) -> ScanPolicy:
        return ScanPolicy(
            max_state_age=timedelta(seconds=self.state_max_age),
            initial_window=timedelta(seconds=self.initial_window),
            page_delay=timedelta(milliseconds=self.page_delay),
        )


def parse_arguments(sys_args: Sequence[str]) -> Args:
    parser = PluginArgumentParser(prog="check-cloudwatch-logs", description=__doc__)

    parser.add_argument("--region", metavar="REGION", default=None, help="AWS Region")
    parser.add_argument(
        "--access-key-id", metavar="ACCESS-KEY-ID", default=None, help="AWS Access Key ID"
    )
    parser.add_argument(
        "--secret-access-key",
        metavar="SECRET-ACCESS-KEY",
        default=None,
        help="AWS Secret Access Key",
    )
    parser.add_argument(
        "--log-group-name", metavar="LOG-GROUP-NAME", required=True, help="Log group name"
    )
    parser.add_argument(
        "-p",
        "--pattern",
        metavar="PATTERN",
        required=True,
        help=(
            "Pattern to search for. "
            "The value is recognized as the pattern syntax of CloudWatch Logs."
        ),
    )
    parser.add_argument(
        "-w",
        "--warning-over",
        metavar="WARNING",
        type=int,
        default=0,
        help="Trigger a warning if matched lines is over a number",
    )
    parser.add_argument(
        "-c",
        "--critical-over",
        metavar="CRITICAL",
        type=int,
        default=0,
        help="Trigger a critical if matched lines is over a number",
    )
    parser.add_argument(
        "-s",
        "--state-dir",
        metavar="DIR",
        default=None,
        help=f"Dir to keep state files under (Default: '{_STATE_DIR_NAME}' in the work dir)",
    )
    parser.add_argument(
        "-r",
        "--return",
        dest="return_content",
        action="store_true",
        help="Output matched lines",
    )
    parser.add_argument(
        "--state-max-age",
        metavar="SECONDS",
        type=int,
        default=int(ScanPolicy.max_state_age.total_seconds()),
        help="Ignore state files older than this (Default: %(default)s)",
    )
    parser.add_argument(
        "--initial-window",
        metavar="SECONDS",
        type=int,
        default=int(ScanPolicy.initial_window.total_seconds()),
        help="Look this far back if there is no usable state (Default: %(default)s)",
    )
    parser.add_argument(
        "--page-delay",
        metavar="MILLISECONDS",
        type=int,
        default=int(ScanPolicy.page_delay.total_seconds() * 1000),
        help="Pause between two page requests (Default: %(default)s)",
    )
    add_logging_arguments(parser)

    return Args.model_validate(vars(parser.parse_args(sys_args)))


class LogEventsClient(Protocol):
    def filter_log_events(self, **kwargs: Any) -> Mapping[str, Any]:
        ...


def create_client(args: Args) -> LogEventsClient:
    # Static credentials are only used if both parts are given, otherwise
    # boto3 looks for them itself (environment, AWS_PROFILE, instance role...)
    credentials = (
        {
            "aws_access_key_id": args.access_key_id,
            "aws_secret_access_key": args.secret_access_key,
        }
        if args.access_key_id and args.secret_access_key
        else {}
    )
    try:
        session = boto3.session.Session(region_name=args.region, **credentials)
        return session.client("logs")
    except (botocore.exceptions.ProfileNotFound, botocore.exceptions.NoRegionError) as e:
        raise ConfigError(str(e)) from e
    except botocore.exceptions.BotoCoreError as e:
        raise ConnectError(str(e)) from e


def _to_millis(timestamp: float) -> int:
    # Full seconds only, just like the timestamps we have written before
    return int(timestamp) * 1000


class IncrementalScanner:
    def __init__(
        self,
        client: LogEventsClient,
        cursor_store: CursorStore,
        log_group_name: str,
        pattern: str,
        policy: ScanPolicy = ScanPolicy(),
        now: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._cursor_store = cursor_store
        self.log_group_name = log_group_name
        self.pattern = pattern
        self.policy = policy
        self._now = now
        self._sleep = sleep

    def _start_position(self) -> tuple[str | None, int]:
        """Return the continuation token and the window start to begin with"""
        now = self._now()
        cursor = self._cursor_store.load()

        if cursor is not None and cursor.window_start_millis is not None:
            oldest_allowed = _to_millis(now - self.policy.max_state_age.total_seconds())
            if cursor.window_start_millis > oldest_allowed:
                logger.info(
                    "Resuming scan at %d (token: %s)",
                    cursor.window_start_millis,
                    "yes" if cursor.continuation_token else "no",
                )
                return cursor.continuation_token, cursor.window_start_millis
            logger.info("State is outdated (%d), starting a new scan", cursor.window_start_millis)

        return None, _to_millis(now - self.policy.initial_window.total_seconds())

    def _filter_log_events(self, start_time: int, next_token: str | None) -> Mapping[str, Any]:
        kwargs: dict[str, Any] = {
            "logGroupName": self.log_group_name,
            "startTime": start_time,
            "filterPattern": self.pattern,
        }
        if next_token is not None:
            kwargs["nextToken"] = next_token

        logger.debug("FilterLogEvents: %r", kwargs)
        try:
            return self._client.filter_log_events(**kwargs)
        except botocore.exceptions.ClientError as e:
            if e.response.get("Error", {}).get("Code") in _ACCESS_ERROR_CODES:
                raise ConnectError(str(e)) from e
            raise ScanError(str(e)) from e
        except (
            botocore.exceptions.NoCredentialsError,
            botocore.exceptions.PartialCredentialsError,
            botocore.exceptions.EndpointConnectionError,
        ) as e:
            raise ConnectError(str(e)) from e
        except botocore.exceptions.BotoCoreError as e:
            raise ScanError(str(e)) from e

    def scan(self) -> list[MatchEvent]:
        """Fetch all matching events since the last run

        The state is only written if a continuation token is still active
        when the last page has been read. Without one, the next run starts
        with a fresh window.
        """
        next_token, start_time = self._start_position()

        events: list[MatchEvent] = []
        while True:
            output = self._filter_log_events(start_time, next_token)

            for raw_event in output.get("events", []):
                event = MatchEvent(message=raw_event["message"], timestamp=raw_event["timestamp"])
                events.append(event)
                start_time = max(start_time, event.timestamp + 1)

            if output.get("nextToken") is None:
                break

            next_token = output["nextToken"]
            self._sleep(self.policy.page_delay.total_seconds())

        logger.info("Found %d matching events", len(events))

        if next_token is not None:
            self._cursor_store.save(
                ScanCursor(continuation_token=next_token, window_start_millis=start_time)
            )

        return events


def evaluate_matches(
    messages: Sequence[str],
    pattern: str,
    warning_over: int,
    critical_over: int,
    return_content: bool = False,
) -> CheckResult:
    """Compare the number of matched messages to the levels

    >>> evaluate_matches(["a"] * 15, "ERROR", 10, 20)
    CheckResult(state=<State.WARN: 1>, summary='15 > 10 messages for pattern /ERROR/')
    """
    state = State.OK
    summary = str(len(messages))
    if len(messages) > critical_over:
        state = State.CRIT
        summary += " > %d" % critical_over
    elif len(messages) > warning_over:
        state = State.WARN
        summary += " > %d" % warning_over
    summary += " messages for pattern /%s/" % pattern

    if not messages:
        return CheckResult(State.OK, summary)

    if return_content:
        summary += "\n" + "".join(messages)
    return CheckResult(state, summary)


def check_cloudwatch_logs(args: Args, sys_argv: Sequence[str], profile: str) -> CheckResult:
    client = create_client(args)
    state_dir = Path(args.state_dir) if args.state_dir else plugin_state_dir(_STATE_DIR_NAME)

    scanner = IncrementalScanner(
        client,
        CursorStore.for_invocation(state_dir, args.log_group_name, sys_argv, profile),
        args.log_group_name,
        args.pattern,
        policy=args.scan_policy(),
    )
    events = scanner.scan()

    return evaluate_matches(
        [event.message for event in events],
        args.pattern,
        args.warning_over,
        args.critical_over,
        return_content=args.return_content,
    )


def main(sys_argv: Sequence[str] | None = None) -> int:
    if sys_argv is None:
        sys_argv = sys.argv[1:]

    args = parse_arguments(sys_argv)
    setup_console_logging(args.verbose, args.debug)

    return run_check(
        CHECK_NAME,
        lambda: check_cloudwatch_logs(args, sys_argv, os.environ.get("AWS_PROFILE", "")),
        debug=args.debug,
    )


if __name__ == "__main__":
    sys.exit(main())
