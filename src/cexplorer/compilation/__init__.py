"""Compile pipeline: admission, orchestration and process supervision."""

from .cache import LRUByteCache
from .commands import CommandLine, CompileJob, select_builder
from .errors import CompilationError, SpawnError, UnknownCompilerError, ValidationError
from .models import CompilationRequest, CompilationResult, OutputLine, parse_output, rejection_payload
from .options import OptionsChecker
from .orchestrator import CompileOrchestrator, check_source
from .registry import CompilerRegistry
from .service import CompileService
from .workspace import Workspace, WorkspaceManager

__all__ = [
    "CommandLine",
    "CompilationError",
    "CompilationRequest",
    "CompilationResult",
    "CompileJob",
    "CompileOrchestrator",
    "CompileService",
    "CompilerRegistry",
    "LRUByteCache",
    "OptionsChecker",
    "OutputLine",
    "SpawnError",
    "UnknownCompilerError",
    "ValidationError",
    "Workspace",
    "WorkspaceManager",
    "check_source",
    "parse_output",
    "rejection_payload",
    "select_builder",
]
