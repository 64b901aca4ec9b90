"""Integration tests for the compile pipeline, driven by the fake compiler.

The fake compiler (``tests/fixtures/fake_cc.py``) reacts to marker words in
the submitted source: ``FAKE_SLEEP``, ``FAKE_FAIL``, ``FAKE_SPAM``,
``FAKE_TRACE`` and ``FAKE_NOOUT``. Anything else compiles to the canned
``square.s`` listing.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import stat
from pathlib import Path

import pytest

from cexplorer.assembly import FilterSet, RawAssembly
from cexplorer.compilation import (
    CompilationRequest,
    CompileOrchestrator,
    CompilerRegistry,
    CompileService,
    SpawnError,
    UnknownCompilerError,
    ValidationError,
    WorkspaceManager,
)
from cexplorer.config import AppConfig, CompilerSettings
from cexplorer.compilation.orchestrator import COMPILATION_FAILED, NO_OUTPUT_FILE, check_source
from cexplorer.compilation.process import TIMEOUT_MARKER

pytestmark = pytest.mark.integration

SQUARE = "int square(int n){return n*n;}"
DEFAULT_FILTERS = FilterSet(directives=True, labels=True, commentOnly=True)


def _request(source: str = SQUARE, compiler: str = "fake", options: tuple[str, ...] = (), **filters) -> CompilationRequest:
    return CompilationRequest(
        compiler=compiler,
        source=source,
        options=options,
        filters=FilterSet(**filters) if filters else DEFAULT_FILTERS,
    )


def _texts(result) -> list[str]:
    return [line.text for line in result.asm]


def _orchestrator_with(config: AppConfig, spawn_log: Path, *compilers: CompilerSettings) -> CompileOrchestrator:
    config.compilers = [*config.compilers, *compilers]
    env = dict(os.environ)
    env["FAKE_CC_LOG"] = str(spawn_log)
    registry = CompilerRegistry(config.compilers, config.compilation)
    return CompileOrchestrator(config, registry, WorkspaceManager(config.workspace), env=env)


class TestCheckSource:
    @pytest.mark.parametrize(
        "source",
        ['#include "/etc/passwd"', "#include <../secret.h>", '  #  import "../x"', "#include_next </usr/x>"],
    )
    def test_rejects_escaping_includes(self, source):
        assert check_source(source) == "<stdin>:1:1: no absolute or relative includes please"

    def test_reports_one_based_line(self):
        source = "#include <vector>\nint x;\n#include \"/etc/shadow\"\n"

        assert check_source(source) == "<stdin>:3:1: no absolute or relative includes please"

    def test_reports_every_offending_line(self):
        source = '#include "/etc/passwd"\nint x;\n#include <../secret.h>\n'

        assert check_source(source) == (
            "<stdin>:1:1: no absolute or relative includes please\n"
            "<stdin>:3:1: no absolute or relative includes please"
        )

    def test_system_headers_are_fine(self):
        assert check_source('#include <stdio.h>\n#include "local.h"\n') is None


class TestCompileService:
    """End-to-end behaviour through admission, cache and orchestrator."""

    def test_square_compiles(self, service: CompileService, spawns):
        result = asyncio.run(service.submit(_request()))

        assert result.code == 0
        assert result.ok_to_cache is True
        assert result.workspace is None
        assert _texts(result)[0] == "square:"
        assert "        imull   %edi, %eax" in _texts(result)
        assert [line.text for line in result.stdout] == ["fake-cc: compiled example.cpp"]
        assert spawns() == 1

    def test_identical_requests_spawn_once(self, service: CompileService, spawns):
        async def scenario():
            first, second = await asyncio.gather(service.submit(_request()), service.submit(_request()))
            third = await service.submit(_request())
            return first, second, third

        first, second, third = asyncio.run(scenario())

        assert spawns() == 1
        assert json.dumps(first.to_dict()) == json.dumps(second.to_dict()) == json.dumps(third.to_dict())
        assert len(service.cache) == 1
        assert service.in_flight == 0

    def test_different_filters_are_different_jobs(self, service: CompileService, spawns):
        async def scenario():
            await service.submit(_request())
            await service.submit(_request(directives=True))

        asyncio.run(scenario())

        assert spawns() == 2

    def test_timeout_is_not_cached(self, service: CompileService, spawns):
        request = _request(source="int f(); // FAKE_SLEEP")

        async def scenario():
            first = await service.submit(request)
            second = await service.submit(request)
            return first, second

        first, second = asyncio.run(scenario())

        assert first.ok_to_cache is False
        assert isinstance(first.asm, RawAssembly)
        assert first.asm.text == COMPILATION_FAILED
        assert first.stderr[-1].text == TIMEOUT_MARKER.strip()
        assert first.to_dict()["okToCache"] is False
        assert second.ok_to_cache is False
        assert spawns() == 2
        assert len(service.cache) == 0

    def test_absolute_include_is_rejected_without_spawning(self, service: CompileService, spawns):
        request = _request(source='#include "/etc/passwd"\nint x;')

        with pytest.raises(ValidationError, match=r"<stdin>:1:1: no absolute or relative includes please"):
            asyncio.run(service.submit(request))

        assert spawns() == 0

    def test_bad_options_are_rejected(self, service: CompileService, spawns):
        request = _request(options=("-O2", "-o/tmp/elsewhere", "-fplugin=evil.so"))

        with pytest.raises(ValidationError) as excinfo:
            asyncio.run(service.submit(request))

        assert str(excinfo.value) == "Bad options: -o/tmp/elsewhere, -fplugin=evil.so"
        assert service.find_bad_options(["-O2", "--"]) == ["--"]
        assert spawns() == 0

    def test_binary_is_coerced_for_unsupported_compiler(self, service: CompileService, spawn_log: Path):
        result = asyncio.run(service.submit(_request(compiler="fake-nobin", binary=True)))

        assert result.code == 0
        assert " -S " in spawn_log.read_text()
        assert all(line.address is None for line in result.asm)

    def test_unknown_compiler(self, service: CompileService):
        with pytest.raises(UnknownCompilerError):
            asyncio.run(service.submit(_request(compiler="icc")))

    def test_remote_compiler_is_not_compiled_locally(self, service: CompileService):
        with pytest.raises(ValidationError, match="remotely"):
            asyncio.run(service.submit(_request(compiler="far")))

    def test_failed_job_error_reaches_every_joiner(self, service: CompileService):
        request = _request(compiler="missing")

        async def scenario():
            return await asyncio.gather(
                service.submit(request),
                service.submit(request),
                return_exceptions=True,
            )

        outcomes = asyncio.run(scenario())

        assert all(isinstance(outcome, SpawnError) for outcome in outcomes)
        assert service.in_flight == 0

    def test_workspaces_are_removed(self, service: CompileService, test_config):
        asyncio.run(service.submit(_request()))

        root = Path(test_config.workspace.root)
        assert list(root.glob(f"{test_config.workspace.prefix}*")) == []


class TestCompileOrchestrator:
    """Output-retrieval branches of a single job."""

    def test_compilation_failure(self, orchestrator: CompileOrchestrator):
        result = asyncio.run(orchestrator.compile(_request(source="int f() { FAKE_FAIL }")))

        assert result.code == 1
        assert _texts(result) == [COMPILATION_FAILED]
        assert result.stderr[0].text == "<source>:3:5: error: expected ';' before '}' token"
        assert result.stderr[0].tag is not None
        assert (result.stderr[0].tag.line, result.stderr[0].tag.column) == (3, 5)

    def test_missing_output_file(self, orchestrator: CompileOrchestrator):
        result = asyncio.run(orchestrator.compile(_request(source="// FAKE_NOOUT")))

        assert _texts(result) == [NO_OUTPUT_FILE]

    def test_oversized_output_reports_sentinel(self, orchestrator: CompileOrchestrator, test_config):
        test_config.limits.max_asm_bytes = 64

        result = asyncio.run(orchestrator.compile(_request()))

        assert result.code == 0
        assert len(result.asm) == 1
        assert re.fullmatch(
            r"<No output: generated assembly was too large \(\d+ > 64 bytes\)>",
            result.asm[0].text,
        )

    def test_output_cap_truncates_stderr(self, orchestrator: CompileOrchestrator):
        result = asyncio.run(orchestrator.compile(_request(source="// FAKE_SPAM")))

        assert result.stderr[-1].text == "[Truncated]"
        assert result.ok_to_cache is True

    def test_numbered_trace_converter(self, orchestrator: CompileOrchestrator):
        result = asyncio.run(orchestrator.compile(_request(source="// FAKE_TRACE", compiler="fake-trace", trim=True)))

        assert result.stdout == []
        texts = _texts(result)
        assert texts[:3] == ['        .file 1 "x.go"', "        .loc 1 5", '        text "".square+0(SB),$0-16']
        assert "        imulq BX,BX" in texts
        imul = next(line for line in result.asm if line.text == "        imulq BX,BX")
        assert imul.source is not None and imul.source.line == 6

    def test_post_process_pipeline(self, orchestrator: CompileOrchestrator):
        result = asyncio.run(orchestrator.compile(_request(compiler="fake-post")))

        assert "        IMULL   %edi, %eax" in _texts(result)

    def test_unspawnable_disassembler_yields_sentinel(self, orchestrator: CompileOrchestrator, test_config, tmp_path):
        test_config.compilation.objdump = str(tmp_path / "no-objdump")

        result = asyncio.run(orchestrator.compile(_request(binary=True)))

        assert result.code == 0
        assert len(result.asm) == 1
        assert result.asm[0].text.startswith("<No output: Failed to execute")
        assert result.asm[0].text.endswith(">")

    def test_failing_disassembler_keeps_every_stderr_line(self, orchestrator: CompileOrchestrator, test_config, tmp_path):
        objdump = tmp_path / "bad-objdump"
        objdump.write_text(
            "#!/bin/sh\n"
            "echo 'objdump: output.s: file format not recognized' >&2\n"
            "echo 'objdump: giving up' >&2\n"
            "exit 1\n"
        )
        objdump.chmod(objdump.stat().st_mode | stat.S_IXUSR)
        test_config.compilation.objdump = str(objdump)

        result = asyncio.run(orchestrator.compile(_request(binary=True)))

        assert result.code == 0
        assert _texts(result) == [
            "<No output: objdump: output.s: file format not recognized",
            "objdump: giving up>",
        ]

    def test_failing_post_process_yields_sentinel(self, test_config, spawn_log: Path):
        orchestrator = _orchestrator_with(
            test_config,
            spawn_log,
            CompilerSettings(
                id="fake-badpost",
                exe=test_config.compilers[0].exe,
                post_process=("(echo 'filter: bad input' >&2; exit 2)",),
            ),
        )

        result = asyncio.run(orchestrator.compile(_request(compiler="fake-badpost")))

        assert result.code == 0
        assert result.ok_to_cache is True
        assert _texts(result) == ["<No output: filter: bad input>"]

    def test_binary_mode_disassembles_and_injects_stub(self, orchestrator: CompileOrchestrator, spawn_log: Path):
        result = asyncio.run(orchestrator.compile(_request(binary=True)))

        texts = _texts(result)
        assert texts[0] == "square:"
        assert "main:" in texts
        assert "_init:" not in texts
        call = next(line for line in result.asm if line.links)
        assert call.address == 0x112F
        assert call.links[0].to == 0x1129
        assert " -S" not in spawn_log.read_text()
        assert "stub provided by cexplorer" in Path(f"{spawn_log}.source").read_text()

    def test_stub_not_injected_when_main_present(self, orchestrator: CompileOrchestrator, spawn_log: Path):
        source = "int main() { return 0; }"
        asyncio.run(orchestrator.compile(_request(source=source, binary=True)))

        assert Path(f"{spawn_log}.source").read_text() == source

    def test_intel_flag_reaches_compiler(self, orchestrator: CompileOrchestrator, spawn_log: Path):
        asyncio.run(orchestrator.compile(_request(intel=True)))

        assert "-masm=intel" in spawn_log.read_text()

    def test_spawn_failure_raises(self, orchestrator: CompileOrchestrator):
        with pytest.raises(SpawnError):
            asyncio.run(orchestrator.compile(_request(compiler="missing")))
