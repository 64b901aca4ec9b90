"""Typer-based CLI for cexplorer."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.json import JSON
from rich.markup import escape
from rich.table import Table

from .compilation import CompilationError, CompilationRequest, CompilationResult
from .environment import EnvironmentReport
from .state import build_state
from .utils import to_json

app = typer.Typer(add_completion=False)
console = Console()


@app.command()
def compile(
    source: Path = typer.Argument(..., help="Source file to compile, or - for stdin"),
    compiler: str = typer.Option(..., "--compiler", "-c", help="Compiler id from the configuration"),
    options: str = typer.Option("", "--options", "-o", help="Compiler options, shell quoted"),
    directives: bool = typer.Option(False, "--directives", help="Hide assembler directives"),
    labels: bool = typer.Option(False, "--labels", help="Hide unused labels"),
    comments: bool = typer.Option(False, "--comments", help="Hide comment-only lines"),
    binary: bool = typer.Option(False, "--binary", help="Link and disassemble with objdump"),
    intel: bool = typer.Option(False, "--intel", help="Request Intel syntax"),
    trim: bool = typer.Option(False, "--trim", help="Trim trailing whitespace and blank runs"),
    json_output: bool = typer.Option(False, "--json", help="Emit the JSON response instead of a listing"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config TOML"),
) -> None:
    """Compile SOURCE and print the filtered listing."""

    if str(source) == "-":
        text = sys.stdin.read()
    elif not source.exists():
        raise typer.BadParameter(f"Source path does not exist: {source}")
    else:
        text = source.read_text(encoding="utf-8")

    state = build_state(config_path)
    payload = {
        "compiler": compiler,
        "source": text,
        "options": options,
        "filters": {
            "directives": directives,
            "labels": labels,
            "commentOnly": comments,
            "binary": binary,
            "intel": intel,
            "trim": trim,
        },
    }
    try:
        request = CompilationRequest.from_payload(payload)
        result = asyncio.run(state.service.submit(request))
    except CompilationError as exc:
        console.print(f"[red]{escape(str(exc))}")
        raise typer.Exit(code=2) from exc
    finally:
        state.remote.close()

    if json_output:
        console.print(JSON.from_data(json.loads(to_json(result.to_dict()))))
    else:
        _render_result(result)
    if result.code != 0:
        raise typer.Exit(code=1)


@app.command()
def compilers(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config TOML"),
) -> None:
    """List configured compilers."""

    state = build_state(config_path)
    table = Table(title="Compilers")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Binary")
    table.add_column("Intel")
    table.add_column("Location")
    for entry in state.registry:
        settings = entry.settings
        table.add_row(
            settings.id,
            settings.display_name,
            "yes" if settings.supports_binary else "no",
            "yes" if settings.intel_asm else "no",
            settings.remote if settings.is_remote else (settings.exe or ""),
        )
    console.print(table)


@app.command("env")
def env_check(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config TOML"),
) -> None:
    """Run environment diagnostics."""

    state = build_state(config_path)
    _render_env_report(state.env)


@app.command()
def serve(
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to config TOML"),
) -> None:
    """Start the HTTP API."""

    from .web.server import run as run_server

    run_server(str(config_path) if config_path else None)


def _render_result(result: CompilationResult) -> None:
    for line in result.stderr:
        console.print(f"[yellow]{escape(line.text)}")
    for line in result.stdout:
        console.print(escape(line.text))

    asm = result.asm
    if isinstance(asm, list):
        for record in asm:
            location = ""
            if record.address is not None:
                location = f"{record.address:8x}"
            elif record.source is not None and record.source.file is None:
                location = f"{record.source.line:>4}"
            console.print(f"[dim]{location:>8}[/dim] {escape(record.text)}", highlight=False)
    elif hasattr(asm, "text"):
        console.print(escape(asm.text), highlight=False)
    else:
        console.print(escape(str(asm)), highlight=False)

    if not result.ok_to_cache:
        console.print("[cyan]Result was not cached (the compiler was killed).")


def _render_env_report(report: EnvironmentReport) -> None:
    console.rule("Environment Report")
    table = Table(title="Tooling")
    table.add_column("Tool")
    table.add_column("Status")
    table.add_column("Details")
    for tool in report.tools:
        status = "[green]OK" if tool.available else "[red]Missing"
        table.add_row(tool.name, status, tool.version or tool.details or "")
    console.print(table)
    console.print(f"Multiarch: {report.multiarch or '-'}")

    if report.issues:
        console.print("[red]Blocking issues detected:")
        for issue in report.issues:
            console.print(f"  • {issue}")

    if report.notes:
        console.print("[cyan]Notes:")
        for note in report.notes:
            console.print(f"  • {escape(note)}")


def run() -> None:
    app()
