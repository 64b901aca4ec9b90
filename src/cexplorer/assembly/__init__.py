"""Assembly listing processing: classification, filtering and format conversion."""

from .classify import LineKind, classify_line
from .converter import convert_numbered_trace
from .models import AssemblyLine, FilterSet, LineLink, RawAssembly, SourceLocation
from .processor import AssemblyProcessor, process_asm

__all__ = [
    "AssemblyLine",
    "AssemblyProcessor",
    "FilterSet",
    "LineKind",
    "LineLink",
    "RawAssembly",
    "SourceLocation",
    "classify_line",
    "convert_numbered_trace",
    "process_asm",
]
