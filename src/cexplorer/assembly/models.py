"""Line model produced by the assembly processor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FilterSet(BaseModel):
    """Independent output filters requested by the caller.

    Wire names follow the browser client (``commentOnly``); Python code uses
    the snake_case field names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    directives: bool = False
    labels: bool = False
    comment_only: bool = Field(default=False, alias="commentOnly")
    binary: bool = False
    intel: bool = False
    trim: bool = False

    def to_wire(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


@dataclass(slots=True, frozen=True)
class SourceLocation:
    line: int
    file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "line": self.line}


@dataclass(slots=True, frozen=True)
class LineLink:
    """Byte range of a line's text that refers to another address."""

    offset: int
    length: int
    to: int

    def to_dict(self) -> dict[str, int]:
        return {"offset": self.offset, "length": self.length, "to": self.to}


@dataclass(slots=True)
class AssemblyLine:
    text: str
    source: SourceLocation | None = None
    address: int | None = None
    opcodes: list[int] | None = None
    links: list[LineLink] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": self.text,
            "source": self.source.to_dict() if self.source else None,
        }
        if self.address is not None:
            payload["address"] = self.address
        if self.opcodes is not None:
            payload["opcodes"] = list(self.opcodes)
        if self.links:
            payload["links"] = [link.to_dict() for link in self.links]
        return payload


@dataclass(slots=True, frozen=True)
class RawAssembly:
    """Unprocessed assembly text, returned for results that are not cached."""

    text: str

    def to_dict(self) -> dict[str, str]:
        return {"text": self.text}


__all__ = ["AssemblyLine", "FilterSet", "LineLink", "RawAssembly", "SourceLocation"]
