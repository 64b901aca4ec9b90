"""Environment detection and verification."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path

from .config import AppConfig

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolCheck:
    name: str
    command: str | None
    available: bool
    version: str | None = None
    path: Path | None = None
    details: str | None = None


@dataclass(slots=True)
class EnvironmentReport:
    python_version: str
    multiarch: str | None = None
    tools: list[ToolCheck] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)

    def missing_tools(self) -> list[str]:
        return [t.name for t in self.tools if not t.available]

    def is_available(self, name: str) -> bool:
        return any(tool.name == name and tool.available for tool in self.tools)


def _check_command(name: str, command: str) -> ToolCheck:
    path = shutil.which(command)
    if not path:
        return ToolCheck(name=name, command=None, available=False)
    version = _probe_version(command)
    return ToolCheck(name=name, command=command, available=True, version=version, path=Path(path))


def _probe_version(command: str) -> str | None:
    try:
        output = subprocess.check_output([command, "--version"], stderr=subprocess.STDOUT, timeout=4)
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        return None
    lines = output.decode(errors="replace").splitlines()
    return lines[0].strip() if lines else None


def probe_multiarch(command: str = "gcc") -> str | None:
    """Ask the system compiler for its Debian multiarch triple."""

    try:
        output = subprocess.check_output([command, "-print-multiarch"], stderr=subprocess.DEVNULL, timeout=4)
    except (OSError, subprocess.CalledProcessError, subprocess.TimeoutExpired):
        return None
    triple = output.decode(errors="replace").strip()
    return triple or None


def detect_environment(config: AppConfig) -> EnvironmentReport:
    report = EnvironmentReport(python_version=sys.version.split()[0])

    local = [compiler for compiler in config.compilers if not compiler.is_remote]
    for compiler in local:
        check = _check_command(compiler.id, compiler.exe or "")
        report.tools.append(check)
        if not check.available:
            report.issues.append(f"Compiler {compiler.id} not found: {compiler.exe}")

    objdump = _check_command("objdump", config.compilation.objdump)
    report.tools.append(objdump)
    if not objdump.available:
        report.notes.append("objdump not found; binary mode will report <No output: ...>.")

    if any(compiler.needs_wine for compiler in local):
        wine = _check_command("wine", config.compilation.wine)
        report.tools.append(wine)
        if not wine.available:
            report.issues.append(f"Wine not found at {config.compilation.wine}")

    report.multiarch = config.compilation.multiarch
    if report.multiarch is None and any(compiler.needs_multi for compiler in local):
        report.multiarch = probe_multiarch()
        if report.multiarch:
            _LOGGER.debug("Detected multiarch triple %s", report.multiarch)
        else:
            report.notes.append("Unable to determine multiarch triple; LIBRARY_PATH will not be set.")

    if config.compilation.compiler_wrapper:
        report.tools.append(_check_command("compiler_wrapper", config.compilation.compiler_wrapper))

    return report


__all__ = ["EnvironmentReport", "ToolCheck", "detect_environment", "probe_multiarch"]
