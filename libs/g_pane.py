#!/usr/bin/env python3
"""
GPane - Pane Navigation State

Per-pane state: the bound backend, the current absolute path, the last
listing and the selection. Paths use "/" on both backends and never end with
a separator except at the root.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from libs.g_errors import NavigationError
from libs.g_listing import FileEntry

if TYPE_CHECKING:
    from libs.g_backends import Backend

ROOT = "/"
SEPARATOR = "/"
PARENT_NAME = ".."


# ============================================================================
# PATH HELPERS
# ============================================================================


def normalize_path(path: Optional[str]) -> str:
    """Normalize a backend path to an absolute "/"-separated path.

    Args:
        path: Path to normalize; empty means root

    Returns:
        Absolute path without trailing separator (except root)
    """
    if not path:
        return ROOT
    return posixpath.normpath(SEPARATOR + path.lstrip(SEPARATOR))


def join_path(base: str, name: str) -> str:
    """Append a leaf name to a directory path without doubling separators."""
    separator = "" if base.endswith(SEPARATOR) else SEPARATOR
    return f"{base}{separator}{name}"


def parent_path(path: str) -> str:
    """Return the parent directory; the parent of root is root."""
    normalized = normalize_path(path)
    if normalized == ROOT:
        return ROOT
    return posixpath.dirname(normalized) or ROOT


def leaf_name(path: str) -> str:
    """Return the last segment of a path ("" for root)."""
    return posixpath.basename(normalize_path(path))


def sibling_path(old_path: str, new_name: str) -> str:
    """Build the rename target for `old_path` with leaf `new_name`.

    Args:
        old_path: Absolute path of the entry being renamed
        new_name: New leaf name

    Returns:
        Absolute path in the same directory
    """
    return join_path(parent_path(old_path), new_name)


def is_valid_leaf(name: str) -> bool:
    """Return True if `name` is a usable single path segment."""
    return bool(name) and name not in (".", PARENT_NAME) and SEPARATOR not in name


# ============================================================================
# SELECTION
# ============================================================================


@dataclass(frozen=True)
class Selection:
    """At most one selected entry plus its absolute path."""

    entry: Optional[FileEntry] = None
    path: Optional[str] = None

    @classmethod
    def empty(cls) -> "Selection":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.entry is None


# ============================================================================
# PANE
# ============================================================================


class Pane:
    """One independently navigable view bound to exactly one backend."""

    def __init__(self, pane_id: str, backend: "Backend", path: str):
        """Initialize the Pane.

        Args:
            pane_id: Pane identifier ("left" or "right")
            backend: Backend the pane is bound to
            path: Initial absolute path
        """
        self.pane_id = pane_id
        self.backend = backend
        self.path = normalize_path(path)
        self.selection = Selection.empty()
        self.entries: List[FileEntry] = []
        # Bumped on every reload, navigation and backend change; listings
        # started under an older generation are discarded.
        self.generation = 0

    @property
    def kind(self):
        return self.backend.kind

    @property
    def serial(self) -> Optional[str]:
        return getattr(self.backend, "serial", None)

    def switch_backend(self, backend: "Backend", root: str):
        """Bind the pane to another backend and reset to its root path.

        Args:
            backend: New backend
            root: Default root path of the new backend
        """
        self.backend = backend
        self.path = normalize_path(root)
        self.entries = []
        self.selection = Selection.empty()
        self.generation += 1

    def rebind_backend(self, backend: "Backend"):
        """Replace the backend but keep the path, e.g. when a device appears."""
        self.backend = backend
        self.selection = Selection.empty()
        self.generation += 1

    def apply_listing(self, entries: List[FileEntry]):
        """Store a fresh listing; selections never survive a reload."""
        self.entries = list(entries)
        self.selection = Selection.empty()

    def find_entry(self, name: str) -> Optional[FileEntry]:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def select(self, name: str) -> Selection:
        """Select the entry called `name` from the current listing.

        Args:
            name: Entry name

        Returns:
            The new selection

        Raises:
            NavigationError: If the entry is not in the current listing
        """
        entry = self.find_entry(name)
        if entry is None:
            raise NavigationError(f"No entry named '{name}'", self.path)
        self.selection = Selection(entry, join_path(self.path, entry.name))
        return self.selection

    def clear_selection(self):
        self.selection = Selection.empty()

    def navigate_into(self, name: Optional[str] = None) -> str:
        """Enter a subdirectory of the current path.

        Args:
            name: Directory name; defaults to the selected entry

        Returns:
            The new path

        Raises:
            NavigationError: If nothing names a directory of the listing
        """
        if name is None:
            if self.selection.is_empty:
                raise NavigationError("Nothing selected", self.path)
            name = self.selection.entry.name
        if name == PARENT_NAME:
            return self.navigate_up()
        if not is_valid_leaf(name):
            raise NavigationError(f"Invalid directory name '{name}'", self.path)

        entry = self.find_entry(name)
        if entry is None or not entry.is_directory:
            raise NavigationError(f"'{name}' is not a directory", self.path)

        self.path = join_path(self.path, name)
        self.selection = Selection.empty()
        self.generation += 1
        return self.path

    def navigate_up(self) -> str:
        """Move to the parent directory; a no-op at root."""
        self.path = parent_path(self.path)
        self.selection = Selection.empty()
        self.generation += 1
        return self.path
