#!/usr/bin/env python3
# Copyright (C) 2019 Checkmk GmbH - License: GNU General Public License v2
# This file is part of Checkmk (https://checkmk.com). It is subject to the terms and
# conditions defined in the file COPYING, which is part of this source code package.
"""This module cares about the file storage of the check plugins. Files are
written to a temporary file first and then moved to their destination, so a
reader never sees a half written file."""

import errno
import logging
import os
import tempfile
from pathlib import Path

from checkplugins.utils.exceptions import PersistError

logger = logging.getLogger("checkplugins.store")


def makedirs(path: Path | str, mode: int = 0o755) -> None:
    if not isinstance(path, Path):
        path = Path(path)
    path.mkdir(mode=mode, exist_ok=True, parents=True)


def load_text_from_file(path: Path | str, default: str | None = None) -> str | None:
    """Return the content of the file or the default if it does not exist

    Any other error (e.g. missing permissions) is passed on to the caller.
    """
    if not isinstance(path, Path):
        path = Path(path)

    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        if e.errno != errno.ENOENT:  # No such file or directory
            raise
        logger.debug("No such file %s", path)
        return default


def save_text_to_file(path: Path | str, content: str, mode: int = 0o644) -> None:
    if not isinstance(content, str):
        raise TypeError("content argument must be Text, not bytes")
    _save_data_to_file(path, content.encode("utf-8"), mode)


# The new content is written to a temporary file in the destination directory
# and moved to the target path afterwards.
def _save_data_to_file(path: Path | str, content: bytes, mode: int = 0o644) -> None:
    if not isinstance(path, Path):
        path = Path(path)

    tmp_path = None
    try:
        makedirs(path.parent)

        with tempfile.NamedTemporaryFile(
            "wb", dir=str(path.parent), prefix=".%s.new" % path.name, delete=False
        ) as tmp:
            tmp_path = tmp.name
            os.chmod(tmp_path, mode)
            tmp.write(content)

        os.rename(tmp_path, str(path))
        logger.debug("Saved %d bytes to %s", len(content), path)

    except Exception as e:
        # In case an exception happens during saving cleanup the tempfile created for writing
        try:
            if tmp_path:
                os.unlink(tmp_path)
        except OSError as e2:
            if e2.errno != errno.ENOENT:  # No such file or directory
                raise

        raise PersistError('Cannot write file "%s": %s' % (path, e)) from e
