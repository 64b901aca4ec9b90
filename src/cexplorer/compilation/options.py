"""Allow/forbid screening of user-supplied compiler options."""

from __future__ import annotations

import re
from typing import Iterable

from ..config import CompilationSettings


class OptionsChecker:
    """An option is bad when it misses the allow regex or hits the forbid regex."""

    def __init__(self, allowed_re: str, forbidden_re: str) -> None:
        self._allowed = re.compile(allowed_re)
        self._forbidden = re.compile(forbidden_re)

    @classmethod
    def from_settings(cls, settings: CompilationSettings) -> "OptionsChecker":
        return cls(settings.options_allowed_re, settings.options_forbidden_re)

    def find_bad_options(self, options: Iterable[str]) -> list[str]:
        return [
            option
            for option in options
            if not self._allowed.match(option) or self._forbidden.match(option)
        ]


__all__ = ["OptionsChecker"]
