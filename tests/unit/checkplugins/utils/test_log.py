#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import io
import logging

import pytest

from checkplugins.utils import log


@pytest.mark.parametrize(
    "verbosity, level",
    [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, log.VERBOSE),
        (3, logging.DEBUG),
    ],
)
def test_verbosity_to_log_level(verbosity: int, level: int) -> None:
    assert log.verbosity_to_log_level(verbosity) == level


def test_setup_console_logging() -> None:
    stream = io.StringIO()
    log.setup_console_logging(1, stream=stream)

    logging.getLogger("checkplugins.test").info("hello")
    logging.getLogger("checkplugins.test").debug("not shown")

    assert stream.getvalue() == "INFO: checkplugins.test: hello\n"


def test_setup_console_logging_debug() -> None:
    stream = io.StringIO()
    log.setup_console_logging(0, debug=True, stream=stream)

    logging.getLogger("checkplugins.test").debug("shown")

    assert stream.getvalue() == "DEBUG: checkplugins.test: shown\n"
    assert logging.getLogger("botocore").level == logging.DEBUG


def test_clear_console_logging() -> None:
    log.setup_console_logging(3, stream=io.StringIO())
    log.clear_console_logging()

    assert len(log.logger.handlers) == 1
    assert isinstance(log.logger.handlers[0], logging.NullHandler)
