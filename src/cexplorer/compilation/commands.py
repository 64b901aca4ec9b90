"""Argument-vector construction per compiler family.

A builder is chosen once per compiler when it is registered
(:func:`select_builder`). The two base families produce the compiler's own
arguments; the Wine and wrapper builders decorate another builder by
changing which program actually runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from ..assembly.models import FilterSet
from ..config import CompilationSettings, CompilerSettings

PathStyle = Callable[[Path], str]


def native_path(path: Path) -> str:
    return str(path)


def wine_path(path: Path) -> str:
    return f"Z:{path}"


@dataclass(slots=True, frozen=True)
class CommandLine:
    program: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return " ".join(self.argv)


@dataclass(slots=True, frozen=True)
class CompileJob:
    """Everything a builder needs to know about one invocation."""

    options: Sequence[str]
    filters: FilterSet
    input_path: Path
    output_path: Path


class CommandBuilder(Protocol):
    family: str

    def build(self, job: CompileJob, path_style: PathStyle = native_path) -> CommandLine:
        ...


def _split(flags: str) -> list[str]:
    return [token for token in flags.split(" ") if token]


class _FamilyBuilder:
    family = "base"

    def __init__(self, compiler: CompilerSettings, settings: CompilationSettings) -> None:
        self._compiler = compiler
        self._settings = settings

    def _compiler_options(self, job: CompileJob) -> list[str]:
        options = [token for token in job.options if token]
        options.extend(_split(self._compiler.options))
        if self._compiler.intel_asm and job.filters.intel and not job.filters.binary:
            options.extend(_split(self._compiler.intel_asm))
        return options


class UnixCommandBuilder(_FamilyBuilder):
    """``cc -g -o <out> -S <options> <input>``"""

    family = "unix"

    def build(self, job: CompileJob, path_style: PathStyle = native_path) -> CommandLine:
        if job.filters.binary:
            mode_flags = _split(self._settings.compile_to_binary)
        else:
            mode_flags = _split(self._compiler.asm_flag)
        args = [
            "-g",
            self._compiler.output_flag,
            path_style(job.output_path),
            *mode_flags,
            *self._compiler_options(job),
            path_style(job.input_path),
        ]
        return CommandLine(program=self._compiler.exe or "", args=tuple(arg for arg in args if arg))


class MsvcCommandBuilder(_FamilyBuilder):
    """``cl <options> /FAsc /c /Fa<out> /Fo<out>.obj <input>``"""

    family = "msvc"

    def build(self, job: CompileJob, path_style: PathStyle = native_path) -> CommandLine:
        output = path_style(job.output_path)
        args = [
            *self._compiler_options(job),
            "/FAsc",
            "/c",
            f"/Fa{output}",
            f"/Fo{output}.obj",
            path_style(job.input_path),
        ]
        return CommandLine(program=self._compiler.exe or "", args=tuple(args))


class WineCommandBuilder:
    """Run a Windows compiler under Wine, rewriting paths to ``Z:``."""

    def __init__(self, inner: CommandBuilder, wine: str) -> None:
        self._inner = inner
        self._wine = wine
        self.family = f"wine+{inner.family}"

    def build(self, job: CompileJob, path_style: PathStyle = wine_path) -> CommandLine:
        command = self._inner.build(job, wine_path)
        return CommandLine(program=self._wine, args=(command.program, *command.args))


class WrapperCommandBuilder:
    """Prefix every invocation with a configured wrapper program."""

    def __init__(self, inner: CommandBuilder, wrapper: str) -> None:
        self._inner = inner
        self._wrapper = wrapper
        self.family = f"wrapped+{inner.family}"

    def build(self, job: CompileJob, path_style: PathStyle = native_path) -> CommandLine:
        command = self._inner.build(job, path_style)
        return CommandLine(program=self._wrapper, args=(command.program, *command.args))


def select_builder(compiler: CompilerSettings, settings: CompilationSettings) -> CommandBuilder:
    builder: CommandBuilder
    if compiler.is_cl:
        builder = MsvcCommandBuilder(compiler, settings)
    else:
        builder = UnixCommandBuilder(compiler, settings)
    if compiler.needs_wine:
        builder = WineCommandBuilder(builder, settings.wine)
    if settings.compiler_wrapper:
        builder = WrapperCommandBuilder(builder, settings.compiler_wrapper)
    return builder


__all__ = [
    "CommandBuilder",
    "CommandLine",
    "CompileJob",
    "MsvcCommandBuilder",
    "UnixCommandBuilder",
    "WineCommandBuilder",
    "WrapperCommandBuilder",
    "native_path",
    "select_builder",
    "wine_path",
]
