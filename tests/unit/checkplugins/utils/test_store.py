#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import stat
from pathlib import Path

import pytest

from checkplugins.utils import store
from checkplugins.utils.exceptions import PersistError


def test_load_text_from_file_missing(tmp_path: Path) -> None:
    assert store.load_text_from_file(tmp_path / "missing") is None
    assert store.load_text_from_file(tmp_path / "missing", default="x") == "x"


def test_load_text_from_file_directory(tmp_path: Path) -> None:
    with pytest.raises(OSError):
        store.load_text_from_file(tmp_path)


def test_save_text_to_file_creates_directories(tmp_path: Path) -> None:
    path = tmp_path / "a" / "b" / "state.json"
    store.save_text_to_file(path, "{}\n")

    assert path.read_text() == "{}\n"
    assert stat.S_IMODE(path.stat().st_mode) == 0o644
    assert [p.name for p in path.parent.iterdir()] == ["state.json"]


def test_save_text_to_file_replaces_content(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    store.save_text_to_file(path, "old")
    store.save_text_to_file(path, "new")
    assert store.load_text_from_file(path) == "new"


def test_save_text_to_file_rejects_bytes(tmp_path: Path) -> None:
    with pytest.raises(TypeError):
        store.save_text_to_file(tmp_path / "state.json", b"{}")  # type: ignore[arg-type]


def test_save_text_to_file_unwritable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("I am a file, not a directory")

    with pytest.raises(PersistError, match="Cannot write file"):
        store.save_text_to_file(blocker / "state.json", "{}")
