"""Backups taken before a file is rewritten in place."""

from __future__ import annotations

import datetime
import re
import shutil

import config
from .exceptions import ProcessingIoError


def backup_timestamp(now: datetime.datetime | None = None) -> str:
    """Sortable UTC timestamp safe for file names.

    ``2026-10-19T08:15:30.123Z`` becomes ``2026-10-19T08-15-30-123Z``.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    stamp = now.astimezone(datetime.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return re.sub(r"[:.]", "-", stamp)


def create_backup(path: str, now: datetime.datetime | None = None) -> str:
    """Copy ``path`` byte for byte to a timestamped sibling.

    :param path: File about to be modified.
    :param now: Time to embed in the name, the current time by default.
    :returns: Location of the backup file.
    :raises ProcessingIoError: When the copy fails.
    """
    backup_path = f"{path}{config.BACKUP_INFIX}{backup_timestamp(now)}"
    try:
        shutil.copyfile(path, backup_path)
    except OSError as exc:
        raise ProcessingIoError(f"Cannot create backup of {path}: {exc}") from exc
    return backup_path
