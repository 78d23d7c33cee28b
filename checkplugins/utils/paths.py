#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""This module serves the path structure of the check plugins"""

import os
import tempfile
from pathlib import Path


def plugin_work_dir() -> Path:
    """Base directory for files the plugins keep between two runs

    >>> os.environ["MACKEREL_PLUGIN_WORKDIR"] = "/var/tmp/plugins"
    >>> str(plugin_work_dir())
    '/var/tmp/plugins'
    >>> del os.environ["MACKEREL_PLUGIN_WORKDIR"]
    """
    return Path(os.environ.get("MACKEREL_PLUGIN_WORKDIR") or tempfile.gettempdir())


def plugin_state_dir(plugin_name: str) -> Path:
    return plugin_work_dir() / plugin_name
