"""Run external tools with a wall-clock budget and bounded output."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from .errors import SpawnError

_LOGGER = logging.getLogger(__name__)

TIMEOUT_MARKER = "\nKilled - processing time exceeded"
TRUNCATED_MARKER = "\n[Truncated]"

_CHUNK_SIZE = 64 * 1024
_POSIX = os.name == "posix"


@dataclass(slots=True)
class ProcessOutput:
    code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def ok_to_cache(self) -> bool:
        return not self.timed_out

    @property
    def truncated(self) -> bool:
        return self.stdout_truncated or self.stderr_truncated


class _CappedBuffer:
    """Accumulates one stream, keeping at most ``limit`` bytes."""

    def __init__(self, limit: int) -> None:
        self._data = bytearray()
        self._limit = limit
        self.truncated = False

    def feed(self, chunk: bytes) -> bool:
        """Append ``chunk``; returns True on the call that crosses the limit."""

        if self.truncated:
            return False
        room = self._limit - len(self._data)
        if len(chunk) > room:
            self._data += chunk[: max(room, 0)]
            self.truncated = True
            return True
        self._data += chunk
        return False

    def text(self) -> str:
        decoded = self._data.decode("utf-8", errors="replace")
        return decoded + TRUNCATED_MARKER if self.truncated else decoded


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL)
        else:  # pragma: no cover - non-posix
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass


async def run_process(
    argv: Sequence[str],
    *,
    timeout_ms: int,
    max_output: int,
    env: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> ProcessOutput:
    """Execute ``argv`` directly (no shell).

    Raises:
        SpawnError: the program could not be started at all.
    """

    program, *args = argv
    _LOGGER.debug("Running: %s", " ".join(argv))
    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
            cwd=str(cwd) if cwd else None,
            start_new_session=_POSIX,
        )
    except OSError as exc:
        raise SpawnError(program, exc) from exc
    return await _supervise(process, program, timeout_ms=timeout_ms, max_output=max_output)


async def run_shell(
    command: str,
    *,
    timeout_ms: int,
    max_output: int,
    cwd: Path | None = None,
) -> ProcessOutput:
    """Execute a shell pipeline built from trusted configuration."""

    _LOGGER.debug("Running shell pipeline: %s", command)
    try:
        process = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            start_new_session=_POSIX,
        )
    except OSError as exc:
        raise SpawnError(command, exc) from exc
    return await _supervise(process, command, timeout_ms=timeout_ms, max_output=max_output)


async def _supervise(
    process: asyncio.subprocess.Process,
    label: str,
    *,
    timeout_ms: int,
    max_output: int,
) -> ProcessOutput:
    stdout = _CappedBuffer(max_output)
    stderr = _CappedBuffer(max_output)

    async def pump(stream: asyncio.StreamReader | None, buffer: _CappedBuffer, name: str) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_CHUNK_SIZE)
            if not chunk:
                return
            if buffer.feed(chunk):
                _LOGGER.info("%s exceeded %d bytes on %s; killing", label, max_output, name)
                _kill(process)

    job = asyncio.gather(
        pump(process.stdout, stdout, "stdout"),
        pump(process.stderr, stderr, "stderr"),
        process.wait(),
    )
    timed_out = False
    try:
        await asyncio.wait_for(asyncio.shield(job), timeout=timeout_ms / 1000)
    except TimeoutError:
        timed_out = True
        _LOGGER.warning("%s exceeded %d ms; killing", label, timeout_ms)
        _kill(process)
        await job

    stderr_text = stderr.text()
    if timed_out:
        stderr_text += TIMEOUT_MARKER
    return ProcessOutput(
        code=process.returncode,
        stdout=stdout.text(),
        stderr=stderr_text,
        timed_out=timed_out,
        stdout_truncated=stdout.truncated,
        stderr_truncated=stderr.truncated,
    )


__all__ = ["ProcessOutput", "TIMEOUT_MARKER", "TRUNCATED_MARKER", "run_process", "run_shell"]
