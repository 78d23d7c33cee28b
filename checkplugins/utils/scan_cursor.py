#!/usr/bin/env python3
# Copyright (C) 2024 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""Persisted position of an incremental scan

One state file is kept per log source and command line. It remembers the
continuation token of a paginated query and the lower bound of the time
window the next run has to start with.
"""

import hashlib
import logging
import re
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from checkplugins.utils import store
from checkplugins.utils.exceptions import StateCorruptError

logger = logging.getLogger("checkplugins.scan_cursor")

# These options only change the diagnostic output of a plugin. Toggling them
# must not lose the position of the scan. Bundles like "-rv" are kept, a
# short option may take the rest of its token as value ("-pv").
_IGNORED_ARGS = frozenset(["--debug", "--verbose"])
_VERBOSITY_ARG = re.compile(r"-v+")

_UNSAFE_CHARS = re.compile(r"[^-a-zA-Z0-9_.]")


class ScanCursor(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True)

    continuation_token: str | None = Field(default=None, alias="NextToken")
    window_start_millis: int | None = Field(default=None, alias="StartTime")


def state_file_name(source: str, args: Sequence[str], profile: str) -> str:
    """Derive the name of the state file for a source and command line

    The profile of the credentials in use is part of the key, so switching
    profiles does not mix up the cursors of different accounts.

    >>> state_file_name("/aws/lambda/my-func", ["--pattern", "ERROR"], "")
    'aws_lambda_my-func-f877c380cd2c857a636f141a7c6876c9.json'
    """
    filtered_args = [
        arg for arg in args if arg not in _IGNORED_ARGS and not _VERBOSITY_ARG.fullmatch(arg)
    ]
    digest = hashlib.md5(
        ("%s %s" % (profile, " ".join(filtered_args))).encode("utf-8"), usedforsecurity=False
    ).hexdigest()
    return "%s-%s.json" % (_UNSAFE_CHARS.sub("_", source).lstrip("_"), digest)


class CursorStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_invocation(
        cls, state_dir: Path, source: str, args: Sequence[str], profile: str
    ) -> "CursorStore":
        return cls(state_dir / state_file_name(source, args, profile))

    def load(self) -> ScanCursor | None:
        """Return the stored cursor or None if nothing has been stored yet"""
        try:
            raw_content = store.load_text_from_file(self.path)
        except UnicodeDecodeError as e:
            raise StateCorruptError('Cannot decode state file "%s": %s' % (self.path, e)) from e
        except OSError as e:
            raise StateCorruptError('Cannot read state file "%s": %s' % (self.path, e)) from e

        if raw_content is None:
            logger.info("No state file %s, starting a new scan", self.path)
            return None

        try:
            cursor = ScanCursor.model_validate_json(raw_content)
        except ValidationError as e:
            raise StateCorruptError(
                'Cannot decode state file "%s": %s'
                % (self.path, "; ".join(err["msg"] for err in e.errors()))
            ) from e

        logger.debug("Loaded %r from %s", cursor, self.path)
        return cursor

    def save(self, cursor: ScanCursor) -> None:
        store.save_text_to_file(self.path, cursor.model_dump_json(by_alias=True) + "\n")
        logger.debug("Saved %r to %s", cursor, self.path)
