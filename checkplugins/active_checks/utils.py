#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Place for common code shared among the active checks"""

import argparse
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from typing import NoReturn

from checkplugins.utils.exceptions import CheckPluginError
from checkplugins.utils.statename import service_state_name, State

logger = logging.getLogger("checkplugins.active_checks")


@dataclass(frozen=True)
class CheckResult:
    state: State
    summary: str

    def render(self, name: str) -> str:
        """
        >>> CheckResult(State.WARN, "15 > 10").render("CloudWatch Logs")
        'CloudWatch Logs WARNING: 15 > 10'
        """
        return "%s %s: %s" % (name, service_state_name(self.state), self.summary)


class PluginArgumentParser(argparse.ArgumentParser):
    """Argument parser that fails with UNKNOWN instead of argparse's exit code 2"""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(int(State.UNKNOWN), "%s: error: %s\n" % (self.prog, message))


def add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--debug", action="store_true", help="Raise Python exceptions.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Verbose mode (specify up to three times for more output)",
    )


def output_check_result(name: str, result: CheckResult) -> int:
    sys.stdout.write("%s\n" % result.render(name))
    return int(result.state)


def run_check(name: str, check: Callable[[], CheckResult], debug: bool = False) -> int:
    """Execute the check and write its result, errors end up as UNKNOWN"""
    try:
        result = check()
    except CheckPluginError as e:
        if debug:
            raise
        logger.debug("Check failed", exc_info=True)
        result = CheckResult(State.UNKNOWN, str(e))
    except Exception as e:
        if debug:
            raise
        logger.exception("Unhandled exception")
        result = CheckResult(State.UNKNOWN, "%s: %s" % (e.__class__.__name__, e))
    return output_check_result(name, result)
