"""Serialization helpers."""

from __future__ import annotations

import json
from typing import Any


def to_json(payload: Any, *, indent: int | None = 2) -> str:
    def _default(obj: Any) -> Any:
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if hasattr(obj, "model_dump"):
            return obj.model_dump(by_alias=True)
        return str(obj)

    separators = (",", ":") if indent is None else None
    return json.dumps(payload, indent=indent, default=_default, sort_keys=True, separators=separators)
