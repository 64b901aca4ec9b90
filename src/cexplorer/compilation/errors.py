"""Exceptions raised by the compilation pipeline.

Only these two conditions reject a request. Everything else (timeouts,
truncated output, failed post-processing, non-zero exit codes) still produces
a :class:`~cexplorer.compilation.models.CompilationResult`.
"""

from __future__ import annotations


class CompilationError(RuntimeError):
    """Base class for pipeline rejections."""


class ValidationError(CompilationError):
    """The request was refused before any filesystem or process work."""


class SpawnError(CompilationError):
    """The operating system could not start the compiler process."""

    def __init__(self, program: str, error: OSError) -> None:
        self.program = program
        self.error = error
        reason = error.strerror or str(error)
        super().__init__(f"Failed to execute {program}: {reason}")


class UnknownCompilerError(CompilationError):
    """The request named a compiler that is not configured."""

    def __init__(self, compiler_id: str) -> None:
        self.compiler_id = compiler_id
        super().__init__(f"Unknown compiler {compiler_id!r}")
