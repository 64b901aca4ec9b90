"""Line-kind classification for textual assembler output.

Each kind has exactly one grammar rule, tried in this order:

``BLANK``
    nothing but whitespace.
``COMMENT``
    the first non-blank characters are a comment marker: ``#``, ``@``, ``;``
    or ``//``.
``LABEL``
    an identifier followed by ``:`` and nothing else except whitespace or a
    trailing comment (``.L3:``, ``main:   # entry``).
``DATA``
    a pseudo-op that emits data (``.string``, ``.long``, ``.zero``, ...).
``DIRECTIVE``
    any other line whose first token starts with ``.``.
``INSTRUCTION``
    everything else, including ``label: insn`` lines.
"""

from __future__ import annotations

import re
from enum import Enum


class LineKind(str, Enum):
    BLANK = "blank"
    COMMENT = "comment"
    LABEL = "label"
    DATA = "data"
    DIRECTIVE = "directive"
    INSTRUCTION = "instruction"


_LABEL_NAME = r"[.a-zA-Z_$][a-zA-Z0-9$_.@]*"

COMMENT_RE = re.compile(r"^\s*(#|@|;|//)")
LABEL_DEF_RE = re.compile(rf"^\s*({_LABEL_NAME}):")
LABEL_ONLY_RE = re.compile(rf"^\s*({_LABEL_NAME}):\s*((#|;|//).*)?$")
DATA_RE = re.compile(r"^\s*\.(string|asciz|ascii|[1248]?byte|short|word|long|quad|value|zero)\b")
DIRECTIVE_RE = re.compile(r"^\s*\.")

_ASSIGNMENT_RE = re.compile(r"^\s*[a-zA-Z_.$][a-zA-Z0-9_.$]*\s*=")
_OPCODE_RE = re.compile(r"^\s*[a-zA-Z]")
_COMMENT_SPLIT_RE = re.compile(r"[#;]")


def classify_line(line: str) -> LineKind:
    if not line.strip():
        return LineKind.BLANK
    if COMMENT_RE.match(line):
        return LineKind.COMMENT
    if LABEL_ONLY_RE.match(line):
        return LineKind.LABEL
    if DATA_RE.match(line):
        return LineKind.DATA
    if DIRECTIVE_RE.match(line) and not LABEL_DEF_RE.match(line):
        return LineKind.DIRECTIVE
    return LineKind.INSTRUCTION


def label_definition(line: str) -> str | None:
    """Name of the label defined at the start of ``line``, if any."""

    match = LABEL_DEF_RE.match(line)
    return match.group(1) if match else None


def has_opcode(line: str) -> bool:
    """Whether ``line`` carries a CPU instruction (after any leading label)."""

    match = LABEL_DEF_RE.match(line)
    if match:
        line = line[match.end():]
    line = _COMMENT_SPLIT_RE.split(line, maxsplit=1)[0]
    if _ASSIGNMENT_RE.match(line):
        return False
    return bool(_OPCODE_RE.match(line))


__all__ = ["LineKind", "classify_line", "has_opcode", "label_definition"]
