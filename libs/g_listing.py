#!/usr/bin/env python3
"""
GListing - Directory Listing Normalization

Turns local stat records and remote `ls -l` text into one list of `FileEntry`
records. The remote parser is a heuristic: it assumes exactly seven metadata
fields (permissions, links, owner, group, size, date, time) before the name,
so listings with a different field count (device files with major/minor
numbers, locales with three-token dates) are misparsed or dropped.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, Union

# ============================================================================
# CONSTANTS
# ============================================================================

REMOTE_METADATA_FIELDS = 7
REMOTE_DATE_FORMAT = "%Y-%m-%d %H:%M"
SYMLINK_ARROW = " -> "

BINARY_EXTENSIONS = (
    ".pdf",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".bmp",
    ".zip",
    ".tar",
    ".gz",
    ".apk",
    ".exe",
    ".bin",
    ".iso",
    ".mp4",
    ".mp3",
    ".wav",
    ".dmg",
    ".doc",
    ".docx",
    ".xls",
    ".xlsx",
    ".ppt",
    ".pptx",
)

# (name, is_directory, size, mtime); None marks an entry that could not be
# stat'ed.
LocalRecord = Optional[Tuple[str, bool, int, Union[float, datetime, None]]]


# ============================================================================
# DATA MODEL
# ============================================================================


@dataclass(frozen=True)
class FileEntry:
    """One file or directory of a listing."""

    name: str
    is_directory: bool
    size: int = 0
    modified: Optional[datetime] = None


def _is_valid_name(name: str) -> bool:
    return bool(name) and name not in (".", "..") and "/" not in name


def _to_datetime(mtime: Union[float, datetime, None]) -> Optional[datetime]:
    if mtime is None or isinstance(mtime, datetime):
        return mtime
    try:
        return datetime.fromtimestamp(mtime)
    except (OverflowError, OSError, ValueError):
        return None


# ============================================================================
# PARSER
# ============================================================================


class ListingParser:
    """Default listing parser used by both backends.

    Backends receive a parser instance, so a stricter parser for a structured
    remote listing can replace this one without touching callers.
    """

    def parse_local(self, records: Iterable[LocalRecord]) -> List[FileEntry]:
        """Map local stat records to entries.

        Args:
            records: Iterable of (name, is_directory, size, mtime) tuples;
                `None` items are entries whose stat call failed

        Returns:
            List of FileEntry, unreadable entries dropped
        """
        entries = []
        for record in records:
            if record is None:
                continue
            name, is_directory, size, mtime = record
            if not _is_valid_name(name):
                continue
            entries.append(
                FileEntry(
                    name=name,
                    is_directory=bool(is_directory),
                    size=0 if is_directory else max(int(size or 0), 0),
                    modified=_to_datetime(mtime),
                )
            )
        return entries

    def parse_remote(self, raw_text: str) -> List[FileEntry]:
        """Parse `ls -l` output from the remote shell.

        Args:
            raw_text: Raw listing text, possibly empty or partial

        Returns:
            List of FileEntry; malformed lines are dropped
        """
        entries = []
        for line in raw_text.splitlines():
            entry = self._parse_remote_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    def _parse_remote_line(self, line: str) -> Optional[FileEntry]:
        """Parse a single listing line, or return None when it is unusable."""
        parts = line.split()
        if len(parts) < 4:
            return None

        permissions = parts[0]
        is_directory = permissions.startswith("d")

        size = 0
        if not is_directory and len(parts) >= 5:
            try:
                size = max(int(parts[4]), 0)
            except ValueError:
                size = 0

        if len(parts) < REMOTE_METADATA_FIELDS + 1:
            return None

        name = " ".join(parts[REMOTE_METADATA_FIELDS:])
        if permissions.startswith("l") and SYMLINK_ARROW in name:
            name = name.split(SYMLINK_ARROW, 1)[0]
        if not _is_valid_name(name):
            return None

        try:
            modified = datetime.strptime(f"{parts[5]} {parts[6]}", REMOTE_DATE_FORMAT)
        except ValueError:
            modified = None

        return FileEntry(
            name=name, is_directory=is_directory, size=size, modified=modified
        )


_DEFAULT_PARSER = ListingParser()


def parse_local_listing(records: Iterable[LocalRecord]) -> List[FileEntry]:
    """Parse local stat records with the default parser."""
    return _DEFAULT_PARSER.parse_local(records)


def parse_remote_listing(raw_text: str) -> List[FileEntry]:
    """Parse remote listing text with the default parser."""
    return _DEFAULT_PARSER.parse_remote(raw_text)


# ============================================================================
# HELPERS
# ============================================================================


def is_binary_name(name: str) -> bool:
    """Return True when the file extension is on the binary list.

    Args:
        name: File name

    Returns:
        True if the editor should refuse the file
    """
    extension = posixpath.splitext(name)[1].lower()
    return extension in BINARY_EXTENSIONS


def format_size(size_bytes: Union[int, float]) -> str:
    """Format file size to be readable.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string
    """
    if size_bytes == 0:
        return "0 B"
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_bytes < 1024.0:
            if unit == "B":
                return f"{int(size_bytes)} {unit}"
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"
