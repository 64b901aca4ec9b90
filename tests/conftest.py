"""Shared pytest fixtures for cexplorer tests."""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

from cexplorer.compilation import CompileOrchestrator, CompileService, CompilerRegistry, WorkspaceManager
from cexplorer.config import (
    AppConfig,
    CompilationSettings,
    CompilerSettings,
    LimitSettings,
    WorkspaceSettings,
)
from cexplorer.environment import EnvironmentReport, ToolCheck

FIXTURES = Path(__file__).resolve().parent / "fixtures"
ASM_FIXTURES = FIXTURES / "asm"


# ============================================================================
# Fake Toolchain
# ============================================================================

@pytest.fixture
def fake_cc(tmp_path: Path) -> Path:
    """Executable wrapper around ``fixtures/fake_cc.py``."""
    wrapper = tmp_path / "bin" / "fake-cc"
    wrapper.parent.mkdir()
    wrapper.write_text(
        "#!/bin/sh\n"
        f'exec "{sys.executable}" "{FIXTURES / "fake_cc.py"}" "$@"\n'
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return wrapper


@pytest.fixture
def spawn_log(tmp_path: Path) -> Path:
    """File the fake compiler appends one line to per invocation."""
    return tmp_path / "spawns.log"


@pytest.fixture
def spawns(spawn_log: Path):
    """Number of compiler invocations recorded so far."""

    def count() -> int:
        if not spawn_log.exists():
            return 0
        return len(spawn_log.read_text().splitlines())

    return count


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config(tmp_path: Path, fake_cc: Path) -> AppConfig:
    """Configuration whose compilers all resolve to the fake toolchain."""
    config = AppConfig()
    config.limits = LimitSettings(
        max_concurrent_jobs=2,
        compile_timeout_ms=2000,
        max_output_bytes=5000,
        max_asm_bytes=1024 * 1024,
        cache_capacity_bytes=1024 * 1024,
    )
    config.compilation = CompilationSettings(objdump=str(fake_cc))
    config.workspace = WorkspaceSettings(root=tmp_path / "workspaces")
    config.compilers = [
        CompilerSettings(id="fake", name="Fake CC", exe=str(fake_cc), intel_asm="-masm=intel"),
        CompilerSettings(id="fake-nobin", exe=str(fake_cc), supports_binary=False),
        CompilerSettings(id="fake-trace", exe=str(fake_cc), line_converter="numbered-trace"),
        CompilerSettings(id="fake-post", exe=str(fake_cc), post_process=("sed -e s/imull/IMULL/",)),
        CompilerSettings(id="missing", exe=str(tmp_path / "no-such-compiler")),
        CompilerSettings(id="far", remote="http://remote.example"),
    ]
    return config


@pytest.fixture
def minimal_config() -> AppConfig:
    """Return minimal configuration for unit tests."""
    return AppConfig()


@pytest.fixture
def mock_env_report() -> EnvironmentReport:
    """Environment report claiming only the fake compiler exists."""
    return EnvironmentReport(
        python_version="3.11.0",
        tools=[
            ToolCheck(name="fake", command="fake-cc", available=True, version="1.0"),
            ToolCheck(name="missing", command=None, available=False),
        ],
    )


# ============================================================================
# Pipeline Fixtures
# ============================================================================

@pytest.fixture
def registry(test_config: AppConfig) -> CompilerRegistry:
    return CompilerRegistry(test_config.compilers, test_config.compilation)


@pytest.fixture
def orchestrator(test_config: AppConfig, registry: CompilerRegistry, spawn_log: Path) -> CompileOrchestrator:
    env = dict(os.environ)
    env["FAKE_CC_LOG"] = str(spawn_log)
    return CompileOrchestrator(test_config, registry, WorkspaceManager(test_config.workspace), env=env)


@pytest.fixture
def service(test_config: AppConfig, orchestrator: CompileOrchestrator) -> CompileService:
    return CompileService(test_config, orchestrator)
