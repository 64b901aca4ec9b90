"""Configured compilers, each paired with its command builder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from ..config import CompilationSettings, CompilerSettings
from .commands import CommandBuilder, select_builder

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RegisteredCompiler:
    settings: CompilerSettings
    builder: CommandBuilder | None

    @property
    def id(self) -> str:
        return self.settings.id


class CompilerRegistry:
    """Lookup table built once at start-up.

    Remote-only compilers are registered without a builder; requests for them
    never reach the local pipeline.
    """

    def __init__(self, compilers: Iterable[CompilerSettings], settings: CompilationSettings) -> None:
        self._compilers: dict[str, RegisteredCompiler] = {}
        for compiler in compilers:
            if compiler.id in self._compilers:
                _LOGGER.warning("Duplicate compiler id %s; keeping the first definition", compiler.id)
                continue
            builder = None if compiler.is_remote else select_builder(compiler, settings)
            self._compilers[compiler.id] = RegisteredCompiler(settings=compiler, builder=builder)
            _LOGGER.debug(
                "Registered compiler %s (%s)",
                compiler.id,
                builder.family if builder else f"remote {compiler.remote}",
            )

    def get(self, compiler_id: str) -> RegisteredCompiler | None:
        return self._compilers.get(compiler_id)

    def __contains__(self, compiler_id: object) -> bool:
        return compiler_id in self._compilers

    def __iter__(self) -> Iterator[RegisteredCompiler]:
        return iter(self._compilers.values())

    def __len__(self) -> int:
        return len(self._compilers)

    def describe(self) -> list[dict[str, object]]:
        return [
            {
                "id": entry.settings.id,
                "name": entry.settings.display_name,
                "supportsBinary": entry.settings.supports_binary,
                "supportsIntel": bool(entry.settings.intel_asm),
                "remote": entry.settings.is_remote,
            }
            for entry in self
        ]


__all__ = ["CompilerRegistry", "RegisteredCompiler"]
