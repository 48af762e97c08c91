"""Integration tests for ProcessRunner against real child processes.

The current interpreter stands in for Terraform and the Azure CLI so the
tests run anywhere.
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import pytest

from terradeck.deploy.process import ProcessRunner
from terradeck.lib.errors import ProcessFailedError, ProcessLaunchError
from terradeck.models.deployment import Credentials

PYTHON = sys.executable


@pytest.mark.integration
class TestProcessRunner:
    """Tests for spawning, streaming and terminating processes."""

    @pytest.mark.asyncio
    async def test_captures_combined_output(self, tmp_path: Path) -> None:
        runner = ProcessRunner()
        script = (
            "import sys; print('out'); sys.stdout.flush(); "
            "print('err', file=sys.stderr)"
        )

        result = await runner.run(PYTHON, ["-c", script], tmp_path)

        assert result.exit_code == 0
        assert "out" in result.output
        assert "err" in result.output
        assert result.command == PYTHON
        assert result.args == ["-c", script]

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, tmp_path: Path) -> None:
        runner = ProcessRunner()

        result = await runner.run(
            PYTHON, ["-c", "import os; print(os.getcwd())"], tmp_path
        )

        assert Path(result.output.strip()).resolve() == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_streams_chunks_before_exit(self, tmp_path: Path) -> None:
        runner = ProcessRunner()
        script = (
            "import sys, time\n"
            "for i in range(3):\n"
            "    print(f'line {i}', flush=True)\n"
            "    time.sleep(0.1)\n"
        )
        arrivals: list[tuple[float, str]] = []

        def on_output(chunk: str) -> None:
            arrivals.append((time.monotonic(), chunk))

        result = await runner.run(PYTHON, ["-c", script], tmp_path, on_output=on_output)
        finished = time.monotonic()

        assert "".join(chunk for _, chunk in arrivals) == result.output
        assert result.output.splitlines() == ["line 0", "line 1", "line 2"]
        assert len(arrivals) >= 2
        assert arrivals[0][0] < finished - 0.1

    @pytest.mark.asyncio
    async def test_decodes_split_utf8(self, tmp_path: Path) -> None:
        runner = ProcessRunner(chunk_size=1)
        script = "import sys; sys.stdout.buffer.write('héllo ✓'.encode())"

        result = await runner.run(PYTHON, ["-c", script], tmp_path)

        assert result.output == "héllo ✓"

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, tmp_path: Path) -> None:
        runner = ProcessRunner()
        script = "import sys; print('Error: Invalid provider'); sys.exit(3)"

        with pytest.raises(ProcessFailedError) as exc_info:
            await runner.run(PYTHON, ["-c", script], tmp_path)

        assert exc_info.value.exit_code == 3
        assert "Error: Invalid provider" in exc_info.value.output

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path: Path) -> None:
        runner = ProcessRunner()

        with pytest.raises(ProcessLaunchError) as exc_info:
            await runner.run("terradeck-no-such-binary", ["--version"], tmp_path)

        assert exc_info.value.command == "terradeck-no-such-binary"

    @pytest.mark.asyncio
    async def test_missing_working_directory(self, tmp_path: Path) -> None:
        runner = ProcessRunner()

        with pytest.raises(ProcessLaunchError):
            await runner.run(PYTHON, ["-c", "pass"], tmp_path / "missing")

    @pytest.mark.asyncio
    async def test_credentials_reach_child_only(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("ARM_SUBSCRIPTION_ID", raising=False)
        runner = ProcessRunner()
        creds = Credentials(
            source="azure_cli", environment={"ARM_SUBSCRIPTION_ID": "sub-123"}
        )
        script = "import os; print(os.environ.get('ARM_SUBSCRIPTION_ID', 'unset'))"

        with_creds = await runner.run(
            PYTHON, ["-c", script], tmp_path, credentials=creds
        )
        without = await runner.run(PYTHON, ["-c", script], tmp_path)

        assert with_creds.output.strip() == "sub-123"
        assert without.output.strip() == "unset"

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_timeout_terminates_process(self, tmp_path: Path) -> None:
        runner = ProcessRunner(terminate_grace=1.0)
        script = "import time; print('started', flush=True); time.sleep(30)"

        started = time.monotonic()
        with pytest.raises(ProcessFailedError) as exc_info:
            await runner.run(PYTHON, ["-c", script], tmp_path, timeout=0.5)

        assert time.monotonic() - started < 10
        assert exc_info.value.exit_code == -1
        assert "started" in exc_info.value.output
        assert "timed out after 0.5 seconds" in exc_info.value.output

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_cancellation_terminates_process(self, tmp_path: Path) -> None:
        runner = ProcessRunner(terminate_grace=1.0)
        marker = tmp_path / "finished"
        script = (
            "import pathlib, time\n"
            "print('started', flush=True)\n"
            "time.sleep(3)\n"
            f"pathlib.Path({str(marker)!r}).write_text('done')\n"
        )
        started = asyncio.Event()

        task = asyncio.create_task(
            runner.run(
                PYTHON, ["-c", script], tmp_path, on_output=lambda _: started.set()
            )
        )
        await asyncio.wait_for(started.wait(), timeout=10)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(3.5)
        assert not marker.exists()
