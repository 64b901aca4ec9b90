"""Rewrite numbered-trace compiler output as conventional assembler text.

Some toolchains (the Go ``6g`` family) print their listing to stdout as
``N (file:line) OPCODE args`` records instead of writing an assembly file.
Converting those records into ``.file``/``.loc`` directives plus plain
instructions lets :mod:`cexplorer.assembly.processor` treat them like any
other compiler's output.
"""

from __future__ import annotations

import re
from typing import Iterable

_TRACE_RE = re.compile(r"^[0-9]+\s*\(([^:]+):([0-9]+)\)\s*([A-Z]+)(.*)")


def convert_numbered_trace(lines: Iterable[str]) -> str:
    file_numbers: dict[str, int] = {}
    previous: tuple[int, str] | None = None
    output: list[str] = []
    for line in lines:
        match = _TRACE_RE.match(line.strip())
        if not match:
            continue
        file_name, line_number, opcode, args = match.groups()
        number = file_numbers.get(file_name)
        if number is None:
            number = len(file_numbers) + 1
            file_numbers[file_name] = number
            output.append(f'\t.file {number} "{file_name}"')
        if previous != (number, line_number):
            output.append(f"\t.loc {number} {line_number}")
            previous = (number, line_number)
        output.append(f"\t{opcode.lower()}{args}")
    return "\n".join(output)


__all__ = ["convert_numbered_trace"]
