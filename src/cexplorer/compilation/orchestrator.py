"""Drive one compile job from validated request to filtered listing."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shlex
from pathlib import Path
from typing import Mapping

from ..assembly import AssemblyLine, AssemblyProcessor, RawAssembly, convert_numbered_trace
from ..config import AppConfig, CompilerSettings
from .commands import CommandBuilder, CompileJob
from .errors import SpawnError, UnknownCompilerError, ValidationError
from .models import CompilationRequest, CompilationResult, parse_output
from .options import OptionsChecker
from .process import ProcessOutput, run_process, run_shell
from .registry import CompilerRegistry, RegisteredCompiler
from .workspace import Workspace, WorkspaceManager

_LOGGER = logging.getLogger(__name__)

_BAD_INCLUDE_RE = re.compile(r'^\s*#\s*i(nclude|mport)(_next)?\s+["<](/|.*\.\.)')

COMPILATION_FAILED = "<Compilation failed>"
NO_OUTPUT_FILE = "<No output file>"
OUTPUT_FILENAME = "output.s"


def check_source(source: str) -> str | None:
    """Return an error message when the source pulls in files outside the workspace.

    Every offending line is reported, one per line of the message.
    """

    problems = [
        f"<stdin>:{index}:1: no absolute or relative includes please"
        for index, line in enumerate(source.split("\n"), start=1)
        if _BAD_INCLUDE_RE.match(line)
    ]
    return "\n".join(problems) or None


class CompileOrchestrator:
    """Run the compile pipeline for locally installed compilers."""

    def __init__(
        self,
        config: AppConfig,
        registry: CompilerRegistry,
        workspaces: WorkspaceManager | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._workspaces = workspaces or WorkspaceManager(config.workspace)
        self._env = dict(env) if env is not None else None
        self._options = OptionsChecker.from_settings(config.compilation)
        self._stub_re = re.compile(config.compilation.stub_re)

    @property
    def registry(self) -> CompilerRegistry:
        return self._registry

    def lookup(self, compiler_id: str) -> RegisteredCompiler:
        entry = self._registry.get(compiler_id)
        if entry is None:
            raise UnknownCompilerError(compiler_id)
        return entry

    def normalize(self, request: CompilationRequest) -> CompilationRequest:
        """Clear the binary filter for compilers that cannot produce binaries."""

        entry = self.lookup(request.compiler)
        if request.filters.binary and not entry.settings.supports_binary:
            _LOGGER.debug("Compiler %s does not support binary output; ignoring", entry.id)
            return request.with_filters(binary=False)
        return request

    def find_bad_options(self, options: tuple[str, ...] | list[str]) -> list[str]:
        return self._options.find_bad_options(options)

    def validate(self, request: CompilationRequest) -> None:
        bad_options = self.find_bad_options(request.options)
        if bad_options:
            raise ValidationError(f"Bad options: {', '.join(bad_options)}")
        problem = check_source(request.source)
        if problem:
            raise ValidationError(problem)

    async def compile(self, request: CompilationRequest) -> CompilationResult:
        entry = self.lookup(request.compiler)
        builder = entry.builder
        if builder is None:
            raise ValidationError(f"Compiler {entry.id} is only available remotely")
        request = self.normalize(request)
        self.validate(request)

        source = request.source
        if request.filters.binary and not self._stub_re.search(source):
            source = f"{source}\n{self._config.compilation.stub_text}\n"

        async with self._workspaces.session() as workspace:
            result, text, sentinel = await self._run_in(workspace, entry.settings, builder, request, source)

        result.workspace = None
        if not result.ok_to_cache:
            result.asm = RawAssembly(text)
        elif sentinel:
            # Error documents are shown as is, never parsed as assembly.
            result.asm = [AssemblyLine(text=line) for line in text.splitlines() or [text]]
        else:
            processor = AssemblyProcessor(
                primary_filename=self._config.compilation.compile_filename,
                hide_function_re=self._config.compilation.binary_hide_func_re,
                max_lines=self._config.limits.max_asm_lines,
            )
            result.asm = await asyncio.to_thread(processor.process, text, request.filters)
        return result

    async def _run_in(
        self,
        workspace: Workspace,
        compiler: CompilerSettings,
        builder: CommandBuilder,
        request: CompilationRequest,
        source: str,
    ) -> tuple[CompilationResult, str, bool]:
        """Compile inside ``workspace``; the flag marks sentinel error documents."""

        limits = self._config.limits
        input_path = workspace.file(self._config.compilation.compile_filename)
        output_path = workspace.file(OUTPUT_FILENAME)
        await asyncio.to_thread(input_path.write_text, source, encoding="utf-8")

        command = builder.build(
            CompileJob(
                options=request.options,
                filters=request.filters,
                input_path=input_path,
                output_path=output_path,
            )
        )
        _LOGGER.debug("Compiling with %s: %s", compiler.id, command)
        output = await run_process(
            command.argv,
            timeout_ms=limits.compile_timeout_ms,
            max_output=limits.max_output_bytes,
            env=self._environment(compiler),
            cwd=workspace.path,
        )

        result = CompilationResult(
            code=output.code,
            stdout=parse_output(output.stdout, str(input_path)),
            stderr=parse_output(output.stderr, str(input_path)),
            ok_to_cache=output.ok_to_cache,
            workspace=workspace.path,
        )
        if output.code != 0:
            return result, COMPILATION_FAILED, True

        if compiler.line_converter == "numbered-trace":
            result.stdout = []
            return result, convert_numbered_trace(output.stdout.splitlines()), False

        if request.filters.binary and not compiler.is_cl:
            text, sentinel = await self._disassemble(output_path, request, result)
            return result, text, sentinel

        try:
            size = (await asyncio.to_thread(output_path.stat)).st_size
        except FileNotFoundError:
            return result, NO_OUTPUT_FILE, True
        if size >= limits.max_asm_bytes:
            message = f"<No output: generated assembly was too large ({size} > {limits.max_asm_bytes} bytes)>"
            return result, message, True

        if compiler.post_process:
            text, sentinel = await self._post_process(output_path, compiler, workspace, result)
            return result, text, sentinel
        text = await asyncio.to_thread(output_path.read_text, encoding="utf-8", errors="replace")
        return result, text, False

    async def _disassemble(
        self,
        output_path: Path,
        request: CompilationRequest,
        result: CompilationResult,
    ) -> tuple[str, bool]:
        argv = [
            self._config.compilation.objdump,
            "-d",
            "-C",
            str(output_path),
            "-l",
            "--insn-width=16",
        ]
        if request.filters.intel:
            argv.extend(["-M", "intel"])
        try:
            output = await run_process(
                argv,
                timeout_ms=self._config.limits.compile_timeout_ms,
                max_output=self._config.limits.max_asm_bytes,
            )
        except SpawnError as exc:
            _LOGGER.warning("Disassembler unavailable: %s", exc)
            return f"<No output: {exc}>", True
        return self._tool_output(output, result)

    async def _post_process(
        self,
        output_path: Path,
        compiler: CompilerSettings,
        workspace: Workspace,
        result: CompilationResult,
    ) -> tuple[str, bool]:
        pipeline = " | ".join([f"cat {shlex.quote(str(output_path))}", *compiler.post_process])
        try:
            output = await run_shell(
                pipeline,
                timeout_ms=self._config.limits.compile_timeout_ms,
                max_output=self._config.limits.max_asm_bytes,
                cwd=workspace.path,
            )
        except SpawnError as exc:
            _LOGGER.warning("Post-process pipeline unavailable: %s", exc)
            return f"<No output: {exc}>", True
        return self._tool_output(output, result)

    @staticmethod
    def _tool_output(output: ProcessOutput, result: CompilationResult) -> tuple[str, bool]:
        if not output.ok_to_cache:
            result.ok_to_cache = False
        if output.code != 0:
            reason = output.stderr.strip() or f"exit code {output.code}"
            _LOGGER.info("Output tool failed: %s", reason)
            return f"<No output: {reason}>", True
        return output.stdout, False

    def _environment(self, compiler: CompilerSettings) -> dict[str, str]:
        env = dict(self._env) if self._env is not None else dict(os.environ)
        multiarch = self._config.compilation.multiarch
        if compiler.needs_multi and multiarch:
            env["LIBRARY_PATH"] = f"/usr/lib/{multiarch}"
        return env


__all__ = ["COMPILATION_FAILED", "CompileOrchestrator", "NO_OUTPUT_FILE", "check_source"]
