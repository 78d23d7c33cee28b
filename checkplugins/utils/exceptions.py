#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""User-defined exceptions and error handling related constant."""

__all__ = [
    "CheckPluginError",
    "ConfigError",
    "ConnectError",
    "ParseError",
    "PersistError",
    "ScanError",
    "StateCorruptError",
]


# never used directly in the code. Just some wrapper to make all of our
# exceptions handleable with one call
class CheckPluginError(Exception):
    pass


class ConfigError(CheckPluginError):
    """Missing or malformed configuration (options, my.cnf, profiles, certificates)."""


class ConnectError(CheckPluginError):
    """The monitored system cannot be reached or rejects the credentials."""


class ScanError(CheckPluginError):
    """A query against the monitored system failed."""


class ParseError(CheckPluginError, ValueError):
    pass


# The state file exists, but its content cannot be used. This is never
# treated like a missing state file: silently starting over would hide the
# corruption from the operator.
class StateCorruptError(CheckPluginError):
    pass


# Raised when the state of a successful run cannot be written. The next run
# would report the same events again, so the run has to fail now.
class PersistError(CheckPluginError):
    pass
