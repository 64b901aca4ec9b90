"""Turn raw compiler or objdump output into filtered, annotated lines.

This module performs no I/O. Textual assembler output and objdump
disassembly take different paths; both preserve input order and only ever
drop or annotate lines.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from .classify import LineKind, classify_line, has_opcode, label_definition
from .models import AssemblyLine, FilterSet, LineLink, SourceLocation

TRUNCATION_MARKER = "[truncated; too many lines]"

_LABEL_REFERENCE_RE = re.compile(r"[.a-zA-Z_][a-zA-Z_$0-9.]*")
_DEFINES_GLOBAL_RE = re.compile(r"^\s*\.globa?l\s*([.a-zA-Z_][a-zA-Z0-9$_.]*)")
_DEFINES_FUNCTION_RE = re.compile(r"^\s*\.type\s*([.a-zA-Z_][a-zA-Z0-9$_.]*)\s*,\s*[@%]function\s*$")
_FILE_RE = re.compile(r'^\s*\.file\s+(\d+)\s+"([^"]+)"(\s+"([^"]+)")?')
_LOC_RE = re.compile(r"^\s*\.loc\s+(\d+)\s+(\d+)")
_STDIN_RE = re.compile(r"<stdin>|^-$")
_END_BLOCK_RE = re.compile(r"\.(cfi_endproc|data|text|section)\b")

# objdump -d -l output
_OBJDUMP_SOURCE_RE = re.compile(r"^(/[^:]+):([0-9]+)")
_OBJDUMP_FUNCTION_RE = re.compile(r"^([0-9a-f]+)\s+<([^>]+)>:$")
_OBJDUMP_INSN_RE = re.compile(r"^\s*([0-9a-f]+):\s*((?:[0-9a-f][0-9a-f] ?)+)\s*(.*)")
_OBJDUMP_DEST_RE = re.compile(r"\s([0-9a-f]+)\s+<([^>]+)>$")

_MAX_LABEL_ITERATIONS = 10


def _split_lines(text: str) -> list[str]:
    lines = re.split(r"\r?\n", text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


@dataclass(slots=True)
class _LabelUsage:
    used: set[str] = field(default_factory=set)
    weak: dict[str, list[str]] = field(default_factory=dict)

    def resolve(self) -> set[str]:
        for _ in range(_MAX_LABEL_ITERATIONS):
            to_add = {
                label
                for owner in self.used
                for label in self.weak.get(owner, ())
                if label not in self.used
            }
            if not to_add:
                break
            self.used |= to_add
        return self.used


def find_used_labels(lines: list[str], filter_directives: bool) -> set[str]:
    """Labels that something visible refers to.

    Instructions, ``.globl`` and ``.type ..., @function`` make a label used
    outright. References from data definitions are weak: they only count once
    the label owning that data is itself used. Other directives count when
    directives are not being filtered away.
    """

    usage = _LabelUsage()
    current_label: str | None = None
    for line in lines:
        kind = classify_line(line)
        if kind in (LineKind.BLANK, LineKind.COMMENT):
            continue

        match = _DEFINES_GLOBAL_RE.match(line) or _DEFINES_FUNCTION_RE.match(line)
        if match:
            usage.used.add(match.group(1))

        body = line
        defined = label_definition(line)
        if defined is not None:
            current_label = defined
            body = line.split(":", 1)[1]

        references = _LABEL_REFERENCE_RE.findall(body)
        if not references:
            continue
        if kind is LineKind.INSTRUCTION and has_opcode(line):
            usage.used.update(references)
        elif kind is LineKind.DATA:
            if current_label is not None:
                usage.weak.setdefault(current_label, []).extend(references)
        elif kind is LineKind.DIRECTIVE and not filter_directives:
            usage.used.update(references)
    return usage.resolve()


class AssemblyProcessor:
    """Classify and filter assembly listings.

    Args:
        primary_filename: name of the compiled input file; source locations in
            that file are reported with ``file=None``.
        hide_function_re: in binary mode, functions whose names match are
            omitted (CRT start-up code, PLT stubs, ...).
        max_lines: listings longer than this are cut and end with a
            truncation marker.
    """

    def __init__(
        self,
        *,
        primary_filename: str | None = None,
        hide_function_re: str | re.Pattern[str] | None = None,
        max_lines: int | None = None,
    ) -> None:
        self._primary_filename = primary_filename
        if isinstance(hide_function_re, str):
            hide_function_re = re.compile(hide_function_re) if hide_function_re else None
        self._hide_function_re = hide_function_re
        self._max_lines = max_lines

    def process(self, text: str | None, filters: FilterSet) -> list[AssemblyLine]:
        if not text:
            return []
        lines = _split_lines(text)
        if len(lines) == 1 and lines[0].startswith("<"):
            # Sentinel documents such as "<Compilation failed>".
            return [AssemblyLine(text=lines[0])]

        if filters.binary:
            result = self._process_binary(lines)
        else:
            result = self._process_text(lines, filters)

        if self._max_lines is not None and len(result) > self._max_lines:
            result = result[: self._max_lines]
            result.append(AssemblyLine(text=TRUNCATION_MARKER))
        if filters.trim:
            result = _trim(result)
        return result

    def _source_file(self, name: str) -> str | None:
        if _STDIN_RE.search(name):
            return None
        if self._primary_filename and PurePosixPath(name).name == self._primary_filename:
            return None
        return name

    def _process_text(self, lines: list[str], filters: FilterSet) -> list[AssemblyLine]:
        used_labels = find_used_labels(lines, filters.directives)
        files: dict[int, str] = {}
        for line in lines:
            match = _FILE_RE.match(line)
            if match:
                name = match.group(2)
                if match.group(4):
                    name = f"{name}/{match.group(4)}"
                files[int(match.group(1))] = name

        result: list[AssemblyLine] = []
        source: SourceLocation | None = None
        prev_label: str | None = None
        for line in lines:
            kind = classify_line(line)
            if kind is LineKind.BLANK:
                result.append(AssemblyLine(text=""))
                continue

            match = _LOC_RE.match(line)
            if match:
                file_name = files.get(int(match.group(1)))
                source = SourceLocation(
                    line=int(match.group(2)),
                    file=self._source_file(file_name) if file_name else None,
                )
            if _END_BLOCK_RE.search(line):
                source = None
                prev_label = None

            if kind is LineKind.COMMENT and filters.comment_only:
                continue
            if kind is LineKind.LABEL:
                label = label_definition(line)
                if label in used_labels:
                    prev_label = label
                else:
                    prev_label = None
                    if filters.labels:
                        continue
            elif kind is LineKind.INSTRUCTION:
                label = label_definition(line)
                if label is not None and label in used_labels:
                    prev_label = label
            if filters.directives:
                if kind is LineKind.DIRECTIVE:
                    continue
                if kind is LineKind.DATA and prev_label is None:
                    continue

            result.append(
                AssemblyLine(
                    text=line.expandtabs(8),
                    source=source if has_opcode(line) else None,
                )
            )
        return result

    def _process_binary(self, lines: list[str]) -> list[AssemblyLine]:
        result: list[AssemblyLine] = []
        source: SourceLocation | None = None
        function: str | None = None
        for line in lines:
            match = _OBJDUMP_SOURCE_RE.match(line)
            if match:
                source = SourceLocation(line=int(match.group(2)), file=self._source_file(match.group(1)))
                continue

            match = _OBJDUMP_FUNCTION_RE.match(line)
            if match:
                function = match.group(2)
                if self._is_user_function(function):
                    result.append(AssemblyLine(text=f"{function}:"))
                continue

            if function is None or not self._is_user_function(function):
                continue

            match = _OBJDUMP_INSN_RE.match(line)
            if not match:
                continue
            text = " " + match.group(3).rstrip()
            links = None
            dest = _OBJDUMP_DEST_RE.search(text)
            if dest:
                links = [
                    LineLink(
                        offset=dest.start(1),
                        length=len(dest.group(1)),
                        to=int(dest.group(1), 16),
                    )
                ]
            result.append(
                AssemblyLine(
                    text=text,
                    source=source,
                    address=int(match.group(1), 16),
                    opcodes=[int(byte, 16) for byte in match.group(2).split()],
                    links=links,
                )
            )
        return result

    def _is_user_function(self, name: str) -> bool:
        return self._hide_function_re is None or not self._hide_function_re.match(name)


def _trim(lines: list[AssemblyLine]) -> list[AssemblyLine]:
    result: list[AssemblyLine] = []
    previous_blank = False
    for line in lines:
        line.text = line.text.rstrip()
        blank = not line.text
        if blank and previous_blank:
            continue
        previous_blank = blank
        result.append(line)
    return result


def process_asm(text: str | None, filters: FilterSet, **options: object) -> list[AssemblyLine]:
    """Convenience wrapper around :class:`AssemblyProcessor`."""

    return AssemblyProcessor(**options).process(text, filters)  # type: ignore[arg-type]


__all__ = ["AssemblyProcessor", "TRUNCATION_MARKER", "find_used_labels", "process_asm"]
