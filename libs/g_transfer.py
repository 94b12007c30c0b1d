#!/usr/bin/env python3
"""
GTransfer - Transfer Orchestrator

Copies one file or directory between two backend bindings. The strategy is
picked from a table keyed by (source kind, destination kind). Local to
remote directory copies go through a tar archive with symbolic links
dereferenced, because a recursive push fails on links. Temporary artifacts are
registered on the plan before they are created and released on every exit
path; release failures are logged and never replace the original error.

 Author: Gino Bogo
License: MIT
Version: 1.0
"""

from __future__ import annotations

import os
import tarfile
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Tuple

from libs.g_backends import (
    Backend,
    BackendKind,
    LocalBackend,
    RemoteBackend,
    make_temp_name,
    remove_quietly,
)
from libs.g_errors import (
    GCommanderError,
    NoDeviceBound,
    TransferError,
    UnsupportedCrossDevice,
)
from libs.g_log import log
from libs.g_pane import leaf_name, normalize_path


# ============================================================================
# DATA MODEL
# ============================================================================


@dataclass
class TransferEndpoint:
    """One side of a transfer: a backend and a path on it."""

    backend: Backend
    path: str
    is_directory: bool = False


@dataclass
class TransferPlan:
    """Steps and temp artifacts of one transfer invocation."""

    source_backend: Backend
    dest_backend: Backend
    source_path: str
    dest_path: str
    is_directory: bool
    temp_artifacts: List[Tuple[str, Callable[[], None]]] = field(default_factory=list)

    def register(self, label: str, release: Callable[[], None]):
        """Register a temp artifact and the callable that removes it."""
        self.temp_artifacts.append((label, release))


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class TransferOrchestrator:
    """Selects and runs the transfer strategy for a source/destination pair."""

    def __init__(self, logger_func=log, temp_dir: Optional[str] = None):
        """Initialize the TransferOrchestrator.

        Args:
            logger_func: A function to call for logging messages.
            temp_dir: Local directory for transfer archives
        """
        self.log = logger_func
        self.temp_dir = temp_dir or tempfile.gettempdir()
        self._strategies = {
            (BackendKind.LOCAL, BackendKind.LOCAL): self._copy_local_to_local,
            (BackendKind.LOCAL, BackendKind.REMOTE): self._copy_local_to_remote,
            (BackendKind.REMOTE, BackendKind.LOCAL): self._copy_remote_to_local,
            (BackendKind.REMOTE, BackendKind.REMOTE): self._copy_remote_to_remote,
        }

    def transfer(self, source: TransferEndpoint, dest: TransferEndpoint):
        """Copy `source` to `dest`.

        Args:
            source: Source backend, path and directory flag
            dest: Destination backend and full destination path

        Raises:
            NoDeviceBound: If a remote endpoint has no device serial
            UnsupportedCrossDevice: For remote to remote between two devices
            TransferError: If any step fails; nothing is retried
        """
        for endpoint in (source, dest):
            if endpoint.backend.kind is BackendKind.REMOTE and not endpoint.backend.serial:
                raise NoDeviceBound()

        is_directory = source.is_directory
        if source.backend.kind is BackendKind.LOCAL:
            is_directory = os.path.isdir(source.path)

        plan = TransferPlan(
            source_backend=source.backend,
            dest_backend=dest.backend,
            source_path=source.path,
            dest_path=normalize_path(dest.path),
            is_directory=is_directory,
        )
        strategy = self._strategies[(source.backend.kind, dest.backend.kind)]

        self.log(
            f"Transfer {plan.source_path} ({source.backend.describe()}) -> "
            f"{plan.dest_path} ({dest.backend.describe()})"
        )
        with self._planned(plan):
            strategy(plan)
        self.log(f"Transfer of {plan.source_path} completed")

    # -- plan helpers -------------------------------------------------------

    @contextmanager
    def _planned(self, plan: TransferPlan) -> Iterator[TransferPlan]:
        """Release every registered temp artifact when the plan exits."""
        try:
            yield plan
        finally:
            for label, release in reversed(plan.temp_artifacts):
                try:
                    release()
                except (GCommanderError, OSError) as e:
                    self.log(f"Warning: could not clean up {label}: {e}")
            plan.temp_artifacts.clear()

    def _step(self, plan: TransferPlan, name: str, func: Callable, *args):
        """Run one step, wrapping any failure in a TransferError."""
        self.log(f"Step '{name}' for {plan.source_path}")
        try:
            return func(*args)
        except (GCommanderError, OSError, tarfile.TarError) as e:
            raise TransferError(name, e, plan.source_path) from e

    # -- strategies ---------------------------------------------------------

    def _copy_local_to_local(self, plan: TransferPlan):
        self._step(
            plan, "copy", plan.source_backend.copy_same_backend,
            plan.source_path, plan.dest_path,
        )

    def _copy_local_to_remote(self, plan: TransferPlan):
        dest: RemoteBackend = plan.dest_backend
        if not plan.is_directory:
            self._step(plan, "push", dest.push, plan.source_path, plan.dest_path)
            return

        source: LocalBackend = plan.source_backend
        archive_name = make_temp_name("copy", ".tar")
        local_archive = os.path.join(self.temp_dir, archive_name)
        remote_archive = dest.staging_path(archive_name)

        plan.register(local_archive, lambda: remove_quietly(local_archive, self.log))
        self._step(
            plan, "package", source.pack_directory,
            plan.source_path, local_archive, leaf_name(plan.dest_path),
        )

        plan.register(remote_archive, lambda: dest.delete(remote_archive, False))
        self._step(plan, "push", dest.push, local_archive, remote_archive)
        self._step(plan, "extract", dest.unpack_archive, remote_archive, plan.dest_path)

    def _copy_remote_to_local(self, plan: TransferPlan):
        source: RemoteBackend = plan.source_backend
        self._step(plan, "pull", source.pull, plan.source_path, plan.dest_path)

    def _copy_remote_to_remote(self, plan: TransferPlan):
        source: RemoteBackend = plan.source_backend
        if not source.same_device(plan.dest_backend):
            raise UnsupportedCrossDevice(source.serial, plan.dest_backend.serial)
        self._step(
            plan, "copy", source.copy_same_backend, plan.source_path, plan.dest_path
        )
