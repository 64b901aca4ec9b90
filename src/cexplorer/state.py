"""Shared application state helpers for CLI and web entrypoints."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .compilation import CompileOrchestrator, CompileService, CompilerRegistry, WorkspaceManager
from .config import AppConfig, load_config
from .environment import EnvironmentReport, detect_environment
from .logging import configure_logging
from .remote import RemoteDelegate
from .utils.loop import EventLoopThread


@dataclass(slots=True)
class AppState:
    config: AppConfig
    env: EnvironmentReport
    registry: CompilerRegistry
    orchestrator: CompileOrchestrator
    service: CompileService
    remote: RemoteDelegate
    loop: EventLoopThread

    def close(self) -> None:
        self.loop.stop()
        self.remote.close()


def build_state(
    config_path: Optional[Path] = None,
    *,
    config: AppConfig | None = None,
    env: EnvironmentReport | None = None,
    remote: RemoteDelegate | None = None,
) -> AppState:
    """Construct an application state bundle.

    Everything a compile needs (registry, cache, admission) hangs off the
    returned object; nothing is module-global, so tests and the web app can
    build independent instances.
    """

    if config is None:
        config = load_config(config_path)
    configure_logging(config.verbosity)  # type: ignore[arg-type]

    if env is None:
        env = detect_environment(config)
    if not config.compilation.multiarch and env.multiarch:
        config.compilation.multiarch = env.multiarch

    registry = CompilerRegistry(config.compilers, config.compilation)
    orchestrator = CompileOrchestrator(config, registry, WorkspaceManager(config.workspace))
    service = CompileService(config, orchestrator)
    return AppState(
        config=config,
        env=env,
        registry=registry,
        orchestrator=orchestrator,
        service=service,
        remote=remote or RemoteDelegate(timeout=config.limits.remote_timeout_secs),
        loop=EventLoopThread(),
    )
