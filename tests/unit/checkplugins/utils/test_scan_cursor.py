#!/usr/bin/env python3
# Copyright (C) 2024 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.

import json
from pathlib import Path

import pytest

from checkplugins.utils.exceptions import PersistError, StateCorruptError
from checkplugins.utils.scan_cursor import CursorStore, ScanCursor, state_file_name

_ARGS = ["--log-group-name", "/aws/lambda/app", "--pattern", "ERROR", "-w", "10"]


def test_state_file_name_is_stable() -> None:
    assert state_file_name("/aws/lambda/app", _ARGS, "prod") == state_file_name(
        "/aws/lambda/app", list(_ARGS), "prod"
    )


def test_state_file_name_depends_on_pattern() -> None:
    other_args = ["--log-group-name", "/aws/lambda/app", "--pattern", "WARN", "-w", "10"]
    assert state_file_name("/aws/lambda/app", _ARGS, "") != state_file_name(
        "/aws/lambda/app", other_args, ""
    )


def test_state_file_name_depends_on_profile() -> None:
    assert state_file_name("/aws/lambda/app", _ARGS, "prod") != state_file_name(
        "/aws/lambda/app", _ARGS, "staging"
    )


@pytest.mark.parametrize(
    "logging_args",
    [
        ["--debug", "-vv"],
        ["--verbose", "--verbose"],
        ["-v"],
        ["-vvvv", "--debug"],
    ],
)
def test_state_file_name_ignores_logging_options(logging_args: list[str]) -> None:
    assert state_file_name("/aws/lambda/app", _ARGS, "") == state_file_name(
        "/aws/lambda/app", _ARGS + logging_args, ""
    )


def test_state_file_name_keeps_values_looking_like_options() -> None:
    assert state_file_name("/aws/lambda/app", ["-pv"], "") != state_file_name(
        "/aws/lambda/app", [], ""
    )


@pytest.mark.parametrize(
    "source, prefix",
    [
        ("/aws/lambda/app", "aws_lambda_app-"),
        ("my-group_1.log", "my-group_1.log-"),
        ("__weird name!", "weird_name_-"),
    ],
)
def test_state_file_name_is_filesystem_safe(source: str, prefix: str) -> None:
    name = state_file_name(source, _ARGS, "")
    assert name.startswith(prefix)
    assert name.endswith(".json")
    assert "/" not in name


def test_for_invocation(tmp_path: Path) -> None:
    cursor_store = CursorStore.for_invocation(tmp_path, "/aws/lambda/app", _ARGS, "")
    assert cursor_store.path == tmp_path / state_file_name("/aws/lambda/app", _ARGS, "")


def test_load_missing(state_dir: Path) -> None:
    assert CursorStore(state_dir / "missing.json").load() is None


def test_save_and_load(state_dir: Path) -> None:
    cursor_store = CursorStore(state_dir / "nested" / "cursor.json")
    cursor = ScanCursor(continuation_token="token-1", window_start_millis=1700000000123)

    cursor_store.save(cursor)

    assert json.loads(cursor_store.path.read_text()) == {
        "NextToken": "token-1",
        "StartTime": 1700000000123,
    }
    assert cursor_store.load() == cursor


def test_load_null_fields(tmp_path: Path) -> None:
    path = tmp_path / "cursor.json"
    path.write_text('{"NextToken": null, "StartTime": null}\n')

    assert CursorStore(path).load() == ScanCursor()


@pytest.mark.parametrize(
    "content",
    [
        pytest.param(b"{not json", id="invalid json"),
        pytest.param(b"", id="empty file"),
        pytest.param(b"[]", id="list"),
        pytest.param(b'{"NextToken": 5, "StartTime": 1}', id="token is a number"),
        pytest.param(
            b'{"NextToken": "abc", "StartTime": "1700000000000"}', id="time is a string"
        ),
        pytest.param(b'{"NextToken": "\xff\xfe", "StartTime": 1}', id="not utf-8"),
    ],
)
def test_load_corrupt(tmp_path: Path, content: bytes) -> None:
    path = tmp_path / "cursor.json"
    path.write_bytes(content)

    with pytest.raises(StateCorruptError, match="Cannot decode state file"):
        CursorStore(path).load()


def test_load_unreadable(tmp_path: Path) -> None:
    with pytest.raises(StateCorruptError, match="Cannot read state file"):
        CursorStore(tmp_path).load()


def test_save_unwritable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")

    with pytest.raises(PersistError):
        CursorStore(blocker / "cursor.json").save(ScanCursor(continuation_token="t"))
