"""Ephemeral per-job directories."""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

from ..config import WorkspaceSettings

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Workspace:
    path: Path

    def file(self, name: str) -> Path:
        return self.path / name


class WorkspaceManager:
    """Create and remove private job directories.

    Directory names carry a random suffix from :func:`tempfile.mkdtemp`, so
    concurrent jobs never collide. Leftovers from crashed processes are swept
    at most once per ``cleanup_interval_secs``.
    """

    def __init__(self, settings: WorkspaceSettings | None = None) -> None:
        self._settings = settings or WorkspaceSettings()
        self._root = self._settings.root
        self._last_sweep = time.monotonic()

    @property
    def root(self) -> Path:
        return Path(self._root) if self._root else Path(tempfile.gettempdir())

    async def acquire(self) -> Workspace:
        if time.monotonic() - self._last_sweep >= self._settings.cleanup_interval_secs:
            self._last_sweep = time.monotonic()
            await asyncio.to_thread(self.sweep_stale, self._settings.cleanup_interval_secs)
        if self._root:
            Path(self._root).mkdir(parents=True, exist_ok=True)
        path = await asyncio.to_thread(
            tempfile.mkdtemp,
            prefix=self._settings.prefix,
            dir=str(self._root) if self._root else None,
        )
        _LOGGER.debug("Acquired workspace %s", path)
        return Workspace(Path(path))

    async def release(self, workspace: Workspace) -> None:
        await asyncio.to_thread(self._remove, workspace.path)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Workspace]:
        workspace = await self.acquire()
        try:
            yield workspace
        finally:
            await self.release(workspace)

    def sweep_stale(self, max_age_secs: float) -> int:
        """Remove prefixed directories older than ``max_age_secs``; returns the count."""

        cutoff = time.time() - max_age_secs
        removed = 0
        for candidate in self.root.glob(f"{self._settings.prefix}*"):
            try:
                if not candidate.is_dir() or candidate.stat().st_mtime > cutoff:
                    continue
            except OSError:
                continue
            self._remove(candidate)
            removed += 1
        if removed:
            _LOGGER.info("Swept %d stale workspace(s) from %s", removed, self.root)
        return removed

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            _LOGGER.warning("Unable to remove workspace %s: %s", path, exc)
            return
        _LOGGER.debug("Released workspace %s", path)
