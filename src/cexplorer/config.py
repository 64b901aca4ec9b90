"""Configuration loading and modelling."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent.parent / "config" / "default_config.toml"
USER_CONFIG_PATH = Path("~/.config/cexplorer/config.toml").expanduser()

LineConverter = Literal["numbered-trace"]


class CompilerSettings(BaseModel):
    """Descriptor for one configured compiler.

    A compiler either has a local ``exe`` that the pipeline drives, or only a
    ``remote`` endpoint that requests are forwarded to untouched.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    exe: str | None = None
    remote: str | None = None
    supports_binary: bool = True
    needs_multi: bool = False
    needs_wine: bool = False
    is_cl: bool = False
    intel_asm: str = ""
    options: str = ""
    output_flag: str = "-o"
    asm_flag: str = "-S"
    post_process: tuple[str, ...] = ()
    line_converter: LineConverter | None = None

    @field_validator("post_process", mode="before")
    @classmethod
    def _drop_empty_filters(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return tuple(item for item in value if item)
        return value

    @model_validator(mode="after")
    def _needs_exe_or_remote(self) -> "CompilerSettings":
        if not self.exe and not self.remote:
            raise ValueError(f"compiler {self.id!r} needs either exe or remote")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def is_remote(self) -> bool:
        return self.exe is None and bool(self.remote)


class LimitSettings(BaseModel):
    max_concurrent_jobs: int = Field(default=2, ge=1)
    compile_timeout_ms: int = Field(default=10_000, gt=0)
    max_output_bytes: int = Field(default=5000, gt=0)
    max_asm_bytes: int = Field(default=8 * 1024 * 1024, gt=0)
    max_asm_lines: int = Field(default=500_000, gt=0)
    cache_capacity_bytes: int = Field(default=64 * 1024 * 1024, ge=0)
    remote_timeout_secs: float = 30.0


class CompilationSettings(BaseModel):
    compile_filename: str = "example.cpp"
    stub_re: str = r"\bmain\b"
    stub_text: str = "int main(void) { return 0; /* stub provided by cexplorer */ }"
    compile_to_binary: str = ""
    compiler_wrapper: str = ""
    wine: str = "/usr/bin/wine"
    objdump: str = "objdump"
    multiarch: str | None = None
    options_allowed_re: str = ".*"
    options_forbidden_re: str = (
        r"^(-W[alp],)?((-wrapper|-fplugin.*|-specs|-load|-plugin|@.*|-I|-i|-isystem|-o|-B)(=.*)?"
        r"|--|-I/.*|-isystem/.*|-o.+|-B.+)$"
    )
    binary_hide_func_re: str = (
        r"^(__.*|_(init|start|fini)|(de)?register_tm_clones|call_gmon_start|frame_dummy|\.plt.*|_dl_relocate_static_pie)$"
    )


class WorkspaceSettings(BaseModel):
    root: Path | None = None
    prefix: str = "cexplorer-"
    cleanup_interval_secs: int = Field(default=600, gt=0)


class OutputSettings(BaseModel):
    verbosity: str = "normal"


class AppConfig(BaseModel):
    limits: LimitSettings = Field(default_factory=LimitSettings)
    compilation: CompilationSettings = Field(default_factory=CompilationSettings)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)
    compilers: list[CompilerSettings] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=dict)

    @property
    def verbosity(self) -> str:
        return self.output.verbosity

    def compiler(self, compiler_id: str) -> CompilerSettings | None:
        for compiler in self.compilers:
            if compiler.id == compiler_id:
                return compiler
        return None


def _load_toml(path: Path) -> dict[str, Any]:
    import tomllib

    with path.open("rb") as fh:
        return tomllib.load(fh)


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from defaults and optional user overrides."""

    load_dotenv()

    data: dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = _merge(data, _load_toml(DEFAULT_CONFIG_PATH))

    resolved_path = config_path
    if resolved_path is None and os.getenv("CEXPLORER_CONFIG"):
        resolved_path = Path(os.environ["CEXPLORER_CONFIG"]).expanduser()
    if resolved_path is None and USER_CONFIG_PATH.exists():
        resolved_path = USER_CONFIG_PATH

    if resolved_path and resolved_path.exists():
        data = _merge(data, _load_toml(resolved_path))

    config = AppConfig(raw=data)

    # Re-bind nested models from merged dict to capture overrides.
    if "limits" in data:
        config.limits = LimitSettings.model_validate(data["limits"])
    if "compilation" in data:
        config.compilation = CompilationSettings.model_validate(data["compilation"])
    if "workspace" in data:
        config.workspace = WorkspaceSettings.model_validate(data["workspace"])
    if "output" in data:
        config.output = OutputSettings.model_validate(data["output"])
    if "compilers" in data:
        config.compilers = [CompilerSettings.model_validate(item) for item in data["compilers"]]

    env_multiarch = os.getenv("CEXPLORER_MULTIARCH")
    if not config.compilation.multiarch and env_multiarch:
        config.compilation.multiarch = env_multiarch

    return config
