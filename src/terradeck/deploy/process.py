"""External process execution for deployment stages.

``ProcessRunner`` spawns a child process, streams its combined output to an
optional callback chunk by chunk and resolves to a ``ProcessResult``.
``SimulatedProcessRunner`` answers from scripted responses instead of
spawning anything; it backs the ``simulated`` runner mode and the tests.
"""

from __future__ import annotations

import asyncio
import codecs
import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from terradeck.config.defaults import PROCESS_TERMINATE_GRACE_SECONDS
from terradeck.lib.errors import ProcessFailedError, ProcessLaunchError
from terradeck.lib.logging_config import get_logger
from terradeck.models.deployment import Credentials, ProcessResult

logger = get_logger(__name__)

OutputCallback = Callable[[str], None]


class BaseProcessRunner(ABC):
    """Abstract interface for running external commands."""

    @abstractmethod
    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | Path,
        *,
        credentials: Credentials | None = None,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            command: Executable name or path.
            args: Arguments passed to the executable.
            cwd: Working directory for the child process.
            credentials: Credential environment merged over the inherited
                environment for this child only.
            on_output: Called once per chunk of output as it arrives.
            timeout: Seconds before the process is terminated.

        Returns:
            ProcessResult with the full combined stdout/stderr.

        Raises:
            ProcessFailedError: If the process exits non-zero or times out.
            ProcessLaunchError: If the process cannot be started.
        """


class ProcessRunner(BaseProcessRunner):
    """Run commands as asyncio child processes."""

    def __init__(
        self,
        chunk_size: int = 4096,
        terminate_grace: float = PROCESS_TERMINATE_GRACE_SECONDS,
    ) -> None:
        """Initialize the runner.

        Args:
            chunk_size: Maximum bytes read from the pipe per chunk.
            terminate_grace: Seconds to wait after SIGTERM before SIGKILL.
        """
        self.chunk_size = chunk_size
        self.terminate_grace = terminate_grace

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | Path,
        *,
        credentials: Credentials | None = None,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Run a command, streaming combined output to ``on_output``."""
        arg_list = [str(arg) for arg in args]
        env = self._build_env(credentials)

        logger.debug(f"Executing: {command} {' '.join(arg_list)} (cwd={cwd})")
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *arg_list,
                cwd=str(cwd),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ProcessLaunchError(command, str(exc)) from exc

        chunks: list[str] = []
        try:
            exit_code = await asyncio.wait_for(
                self._communicate(process, chunks, on_output), timeout
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            output = "".join(chunks)
            output += f"\nProcess timed out after {timeout} seconds"
            raise ProcessFailedError(command, arg_list, -1, output) from None
        except (asyncio.CancelledError, Exception):
            await self._terminate(process)
            raise

        output = "".join(chunks)
        if exit_code != 0:
            raise ProcessFailedError(command, arg_list, exit_code, output)

        return ProcessResult(
            command=command, args=arg_list, exit_code=exit_code, output=output
        )

    async def _communicate(
        self,
        process: asyncio.subprocess.Process,
        chunks: list[str],
        on_output: OutputCallback | None,
    ) -> int:
        """Pump the output pipe until EOF and wait for the exit code."""
        assert process.stdout is not None  # noqa: S101
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        while True:
            data = await process.stdout.read(self.chunk_size)
            text = decoder.decode(data, final=not data)
            if text:
                chunks.append(text)
                if on_output is not None:
                    on_output(text)
            if not data:
                break

        return await process.wait()

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate a running process, killing it after the grace period."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), self.terminate_grace)
        except asyncio.TimeoutError:
            logger.warning(f"Process {process.pid} ignored SIGTERM, killing it")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()

    @staticmethod
    def _build_env(credentials: Credentials | None) -> dict[str, str]:
        env = dict(os.environ)
        if credentials is not None:
            env.update(credentials.environment)
        return env


@dataclass(frozen=True)
class SimulatedResponse:
    """Scripted answer of the simulated runner.

    Attributes:
        output: Combined output returned (and streamed line by line)
        exit_code: Exit code; non-zero raises ProcessFailedError
        launch_error: When set, raises ProcessLaunchError with this reason
        creates: Files created in the working directory on success
        delay: Seconds to sleep before answering
    """

    output: str = ""
    exit_code: int = 0
    launch_error: str | None = None
    creates: tuple[str, ...] = ()
    delay: float = 0.0


@dataclass
class SimulatedCall:
    """A command received by the simulated runner."""

    command: str
    args: list[str]
    cwd: Path
    credentials: Credentials | None = None

    @property
    def command_line(self) -> str:
        """Return the command and arguments joined by spaces."""
        return " ".join([self.command, *self.args])


SIMULATED_ACCOUNT_JSON = (
    '{"id": "00000000-0000-0000-0000-000000000000", '
    '"name": "Simulated Subscription", '
    '"tenantId": "11111111-1111-1111-1111-111111111111", '
    '"user": {"name": "demo@example.com", "type": "user"}}'
)


def default_simulated_responses() -> dict[str, SimulatedResponse]:
    """Responses of a healthy Azure CLI and Terraform installation."""
    return {
        "az --version": SimulatedResponse(output="azure-cli 2.60.0\n"),
        "az account show": SimulatedResponse(output=SIMULATED_ACCOUNT_JSON),
        "terraform --version": SimulatedResponse(output="Terraform v1.9.0\n"),
        "terraform init": SimulatedResponse(
            output="Terraform has been successfully initialized!\n"
        ),
        "terraform plan": SimulatedResponse(
            output="Plan: 0 to add, 0 to change, 0 to destroy.\n"
        ),
        "terraform apply": SimulatedResponse(
            output="Apply complete! Resources: 0 added, 0 changed, 0 destroyed.\n"
        ),
        "terraform output": SimulatedResponse(output="{}\n"),
    }


@dataclass
class SimulatedProcessRunner(BaseProcessRunner):
    """Process runner that answers from scripted responses.

    Responses are keyed by the command followed by its leading arguments,
    e.g. ``"terraform plan"``; the longest matching key wins. Commands with
    no matching key behave like a missing binary. An argument of the form
    ``-out=<file>`` makes a successful response create that file, the way
    ``terraform plan -out=...`` writes its plan artifact.
    """

    responses: dict[str, SimulatedResponse] = field(
        default_factory=default_simulated_responses
    )
    calls: list[SimulatedCall] = field(default_factory=list)

    def set_response(self, key: str, response: SimulatedResponse) -> None:
        """Add or replace the response for a command key."""
        self.responses[key] = response

    def remove_command(self, command: str) -> None:
        """Drop every response for a command, simulating a missing binary."""
        for key in [k for k in self.responses if k.split(" ")[0] == command]:
            del self.responses[key]

    def commands(self) -> list[str]:
        """Return the command lines received so far."""
        return [call.command_line for call in self.calls]

    def _match(self, command: str, args: Sequence[str]) -> SimulatedResponse | None:
        parts = [command, *args]
        for length in range(len(parts), 0, -1):
            response = self.responses.get(" ".join(parts[:length]))
            if response is not None:
                return response
        return None

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | Path,
        *,
        credentials: Credentials | None = None,
        on_output: OutputCallback | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        """Answer a command from the scripted responses."""
        arg_list = [str(arg) for arg in args]
        workdir = Path(cwd)
        self.calls.append(SimulatedCall(command, arg_list, workdir, credentials))

        response = self._match(command, arg_list)
        if response is None:
            raise ProcessLaunchError(command, "No such file or directory")
        if response.launch_error:
            raise ProcessLaunchError(command, response.launch_error)

        if response.delay:
            if timeout is not None and response.delay > timeout:
                await asyncio.sleep(timeout)
                raise ProcessFailedError(
                    command,
                    arg_list,
                    -1,
                    f"Process timed out after {timeout} seconds",
                )
            await asyncio.sleep(response.delay)

        if on_output is not None:
            for line in response.output.splitlines(keepends=True):
                on_output(line)

        if response.exit_code != 0:
            raise ProcessFailedError(
                command, arg_list, response.exit_code, response.output
            )

        for name in response.creates:
            (workdir / name).write_text("simulated\n", encoding="utf-8")
        for arg in arg_list:
            if arg.startswith("-out="):
                (workdir / arg.split("=", 1)[1]).write_text(
                    "simulated plan\n", encoding="utf-8"
                )

        return ProcessResult(
            command=command,
            args=arg_list,
            exit_code=response.exit_code,
            output=response.output,
        )
