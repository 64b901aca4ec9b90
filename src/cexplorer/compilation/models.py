"""Request and result models for the compilation pipeline."""

from __future__ import annotations

import json
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..assembly.models import AssemblyLine, FilterSet, RawAssembly
from .errors import ValidationError

_SOURCE_TAG_RE = re.compile(r"^\s*<source>[:(]([0-9]+)(:([0-9]+):)?[):]*\s*(.*)")


class CompilationRequest(BaseModel):
    """A single compile request. Never mutated after receipt."""

    model_config = ConfigDict(frozen=True)

    compiler: str
    source: str
    options: tuple[str, ...] = ()
    filters: FilterSet = Field(default_factory=FilterSet)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CompilationRequest":
        """Build a request from the wire format, where options is a shell string."""

        raw_options = payload.get("options") or ""
        if isinstance(raw_options, str):
            try:
                options = [token for token in shlex.split(raw_options) if token]
            except ValueError as exc:
                raise ValidationError(f"Bad options: unable to parse {raw_options!r} ({exc})") from exc
        else:
            options = [str(token) for token in raw_options if token]
        return cls(
            compiler=str(payload.get("compiler", "")),
            source=str(payload.get("source", "")),
            options=tuple(options),
            filters=FilterSet.model_validate(payload.get("filters") or {}),
        )

    def with_filters(self, **changes: bool) -> "CompilationRequest":
        return self.model_copy(update={"filters": self.filters.model_copy(update=changes)})

    def fingerprint(self) -> str:
        """Deterministic key used for caching and single-flight joins."""

        return json.dumps(
            {
                "compiler": self.compiler,
                "source": self.source,
                "options": list(self.options),
                "filters": self.filters.to_wire(),
            },
            sort_keys=True,
            separators=(",", ":"),
        )


@dataclass(slots=True, frozen=True)
class OutputTag:
    line: int
    column: int
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "column": self.column, "text": self.text}


@dataclass(slots=True, frozen=True)
class OutputLine:
    """One line of compiler stdout/stderr, optionally tagged with a source position."""

    text: str
    tag: OutputTag | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.tag is not None:
            payload["tag"] = self.tag.to_dict()
        return payload


def parse_output(text: str, input_filename: str | None = None) -> list[OutputLine]:
    """Split raw process output into line records.

    The workspace path of the input file is replaced by ``<source>`` so that
    diagnostics neither leak temp paths nor differ between runs; diagnostics
    of the form ``<source>:LINE:COL: message`` are tagged.
    """

    result: list[OutputLine] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if input_filename:
            line = line.replace(input_filename, "<source>")
        if not line or line.startswith("fixme:"):
            continue
        tag = None
        match = _SOURCE_TAG_RE.match(line)
        if match:
            tag = OutputTag(
                line=int(match.group(1)),
                column=int(match.group(3) or 0),
                text=match.group(4).strip(),
            )
        result.append(OutputLine(text=line, tag=tag))
    return result


@dataclass(slots=True)
class CompilationResult:
    """Outcome of one compile job.

    ``asm`` holds the raw assembly text while the job is in flight; the
    orchestrator replaces it with either the processed line list or a
    :class:`RawAssembly` before the result leaves it.
    """

    code: int | None
    stdout: list[OutputLine] = field(default_factory=list)
    stderr: list[OutputLine] = field(default_factory=list)
    asm: str | list[AssemblyLine] | RawAssembly = ""
    ok_to_cache: bool = True
    workspace: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.asm, list):
            asm: Any = [line.to_dict() for line in self.asm]
        elif isinstance(self.asm, RawAssembly):
            asm = self.asm.to_dict()
        else:
            asm = {"text": self.asm}
        return {
            "code": -1 if self.code is None else self.code,
            "stdout": [line.to_dict() for line in self.stdout],
            "stderr": [line.to_dict() for line in self.stderr],
            "asm": asm,
            "okToCache": self.ok_to_cache,
        }


def rejection_payload(message: str) -> dict[str, Any]:
    """Well-formed envelope for requests that failed before producing a result."""

    return {"code": -1, "stdout": [], "stderr": [{"text": message}], "asm": []}


__all__ = [
    "CompilationRequest",
    "CompilationResult",
    "FilterSet",
    "OutputLine",
    "OutputTag",
    "parse_output",
    "rejection_payload",
]
