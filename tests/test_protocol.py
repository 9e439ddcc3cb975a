"""Protocol runner tests against the fake p4."""

from __future__ import annotations

from pathlib import Path

import pytest

from p4bridge.errors import MalformedStreamError, P4TimeoutError
from p4bridge.marshal import MappingRecord, PromptRecord, encode
from p4bridge.runtime import (
    ProcessRunner,
    build_spec,
    run_protocol,
    run_protocol_sync,
    run_raw,
    run_raw_sync,
)


@pytest.fixture
def runner() -> ProcessRunner:
    return ProcessRunner(term_timeout=0.5, kill_timeout=0.3)


# =============================================================================
# build_spec
# =============================================================================


class TestBuildSpec:
    """Test ProcessSpec construction."""

    def test_mapping_input_is_marshalled(self, temp_workspace: Path):
        spec = build_spec(["p4", "-G", "change", "-i"], {"Change": "new"}, cwd=temp_workspace)
        assert spec.stdin_bytes == encode({"Change": "new"})
        assert spec.cwd == temp_workspace

    def test_no_input(self):
        spec = build_spec(["p4", "info"])
        assert spec.stdin_bytes is None
        assert spec.cwd == Path.cwd()

    def test_zero_timeout_disables_deadline(self):
        assert build_spec(["p4"], timeout=0).timeout is None

    def test_raw_rejects_mapping(self):
        with pytest.raises(TypeError):
            build_spec(["p4"], {"a": "b"}, raw=True)

    def test_raw_text_input(self):
        assert build_spec(["p4"], "line\n", raw=True).stdin_bytes == b"line\n"


# =============================================================================
# Tagged mode
# =============================================================================


class TestRunProtocol:
    """Test tagged-mode invocations."""

    @pytest.mark.asyncio
    async def test_info(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        result = await run_protocol([*fake_p4_argv, "-G", "info"], cwd=temp_workspace, runner=runner)

        assert result.returncode == 0
        assert result.records[0] == PromptRecord(text="")
        record = result.records[1]
        assert record.code == "stat"
        assert record.get("tagged") == "yes"

    @pytest.mark.asyncio
    async def test_echo_round_trip(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        """A mapping written to stdin decodes back unchanged."""
        data = {"Change": "new", "Description": "line one\nline two\n", "User": "alice"}

        result = await run_protocol([*fake_p4_argv, "-G", "echo"], data, cwd=temp_workspace, runner=runner)

        assert result.records == [PromptRecord(text=""), MappingRecord.from_pairs(data)]

    @pytest.mark.asyncio
    async def test_preamble(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        result = await run_protocol(
            [*fake_p4_argv, "-G", "banner", "Perforce", "says", "hi"],
            cwd=temp_workspace,
            runner=runner,
        )

        assert result.records[0].text == "Perforce says hi"
        assert result.records[1].get("status") == "ok"

    @pytest.mark.asyncio
    async def test_integer_values(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        result = await run_protocol([*fake_p4_argv, "-G", "count", "3"], cwd=temp_workspace, runner=runner)

        assert [r.get("index") for r in result.records[1:]] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stderr_is_side_channel(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        result = await run_protocol(
            [*fake_p4_argv, "-G", "stderr", "something", "odd"],
            cwd=temp_workspace,
            runner=runner,
        )

        assert result.stderr == "something odd"
        assert result.records[1].get("status") == "ok"

    @pytest.mark.asyncio
    async def test_truncated_stream(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        with pytest.raises(MalformedStreamError):
            await run_protocol([*fake_p4_argv, "-G", "truncated"], cwd=temp_workspace, runner=runner)

    @pytest.mark.asyncio
    async def test_nonzero_exit_still_decodes(
        self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner
    ):
        result = await run_protocol([*fake_p4_argv, "-G", "exit", "2"], cwd=temp_workspace, runner=runner)

        assert result.returncode == 2
        assert result.records[1].code == "error"
        assert result.records[1].get("severity") == 3

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_timeout(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        with pytest.raises(P4TimeoutError) as exc_info:
            await run_protocol(
                [*fake_p4_argv, "-G", "sleep", "5"],
                cwd=temp_workspace,
                timeout=0.05,
                runner=runner,
            )
        assert exc_info.value.timeout_ms == 50

    def test_sync(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        data = {"Client": "ws"}
        result = run_protocol_sync([*fake_p4_argv, "-G", "echo"], data, cwd=temp_workspace, runner=runner)

        assert result.records[1].to_dict() == data


# =============================================================================
# Raw mode
# =============================================================================


class TestRunRaw:
    """Test raw-mode invocations."""

    @pytest.mark.asyncio
    async def test_raw_text(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        result = await run_raw([*fake_p4_argv, "set"], cwd=temp_workspace, runner=runner)

        assert result.text == "P4PORT=1666 (set)\nP4USER=alice (set)\n"
        assert result.error == ""
        assert result.returncode == 0

    @pytest.mark.asyncio
    async def test_raw_input_is_not_marshalled(
        self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner
    ):
        result = await run_raw([*fake_p4_argv, "echo"], "plain text", cwd=temp_workspace, runner=runner)

        assert result.text == "plain text"

    def test_raw_sync_stderr(self, fake_p4_argv: list[str], temp_workspace: Path, runner: ProcessRunner):
        result = run_raw_sync([*fake_p4_argv, "stderr", "oops"], cwd=temp_workspace, runner=runner)

        assert result.error == "oops"
