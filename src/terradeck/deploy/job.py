"""Deployment job state machine.

A job moves through ``initializing → authenticating → preparing → planning →
applying → completed``; ``failed`` is reachable from every non-terminal
state. ``JobHandle`` owns the mutable record and enforces the transition
rules; ``DeploymentJobRunner`` drives one job through its stages.
"""

from __future__ import annotations

import asyncio
import threading
from pathlib import Path

from terradeck.deploy.credentials import AzureCredentialGate
from terradeck.deploy.probe import ToolAvailabilityProbe
from terradeck.deploy.process import OutputCallback
from terradeck.deploy.staging import ArtifactWriter
from terradeck.deploy.terraform import TerraformCli
from terradeck.lib.errors import (
    CredentialError,
    DeploymentError,
    OutputParseError,
    ProcessError,
    ToolInvocationError,
)
from terradeck.lib.logging_config import get_logger
from terradeck.models.deployment import (
    ConfigurationBundle,
    Credentials,
    DeploymentAction,
    DeploymentJob,
    DeploymentStatus,
    DeploymentUpdate,
)

logger = get_logger(__name__)

CANCELLED_MESSAGE = "Deployment cancelled"


class InvalidTransitionError(DeploymentError):
    """Raised when an update would move a job backwards in its lifecycle."""

    def __init__(self, current: DeploymentStatus, requested: DeploymentStatus) -> None:
        """Create an error describing the rejected transition."""
        self.current = current
        self.requested = requested
        super().__init__(
            operation="transition",
            message=f"Cannot move from '{current.value}' to '{requested.value}'",
        )


class JobHandle:
    """Mutable registry entry for one deployment job.

    The runner driving the job is the only writer. Readers take deep
    snapshots under the job's own lock, so they never observe a half-applied
    update and never wait on another job.
    """

    def __init__(self, job: DeploymentJob) -> None:
        """Wrap an existing job record."""
        self._job = job
        self._lock = threading.Lock()

    @classmethod
    def create(
        cls,
        job_id: str,
        subject_name: str,
        action: DeploymentAction = DeploymentAction.DEPLOY,
    ) -> JobHandle:
        """Create a job whose first update is ``initializing``."""
        handle = cls(DeploymentJob(id=job_id, subject_name=subject_name, action=action))
        handle.append(
            DeploymentStatus.INITIALIZING,
            f"Initializing deployment for {subject_name}",
        )
        return handle

    @property
    def id(self) -> str:
        """Job identifier."""
        return self._job.id

    @property
    def subject_name(self) -> str:
        """Label of what is being deployed."""
        return self._job.subject_name

    @property
    def action(self) -> DeploymentAction:
        """Requested action."""
        return self._job.action

    @property
    def status(self) -> DeploymentStatus:
        """Current status."""
        with self._lock:
            return self._job.status

    @property
    def is_finished(self) -> bool:
        """Return True once the job reached a terminal state."""
        return self.status.is_terminal

    def snapshot(self) -> DeploymentJob:
        """Return a deep copy of the current record."""
        with self._lock:
            return self._job.model_copy(deep=True)

    def append(
        self,
        status: DeploymentStatus,
        message: str,
        details: str | None = None,
    ) -> DeploymentUpdate | None:
        """Append an update and move the job to ``status``.

        Updates after a terminal state are dropped.

        Returns:
            The appended update, or None if the job had already finished.

        Raises:
            InvalidTransitionError: If ``status`` precedes the current status
                and is not ``failed``.
        """
        update = DeploymentUpdate(status=status, message=message, details=details)
        with self._lock:
            job = self._job
            current = job.status
            if job.updates and current.is_terminal:
                logger.warning(
                    f"Job {job.id} already {current.value}, dropping update: {message}"
                )
                return None
            if status != DeploymentStatus.FAILED and status.rank < current.rank:
                raise InvalidTransitionError(current, status)

            job.updates.append(update)
            job.status = status
            job.logs = f"{job.logs}\n{update.to_log()}" if job.logs else update.to_log()
            if status.is_terminal:
                job.finished_at = update.timestamp
            if status == DeploymentStatus.FAILED:
                job.error = message
        return update

    def set_working_directory(self, path: Path) -> None:
        """Record the job's working directory."""
        with self._lock:
            self._job.working_directory = str(path)

    def set_plan_output(self, output: str) -> None:
        """Record the output of the last successful plan."""
        with self._lock:
            self._job.plan_output = output

    def set_outputs(self, outputs: dict[str, str]) -> None:
        """Record the flattened Terraform outputs."""
        with self._lock:
            self._job.outputs = dict(outputs)

    def fail(self, message: str, details: str | None = None) -> DeploymentUpdate | None:
        """Move the job to ``failed`` unless it already finished."""
        return self.append(DeploymentStatus.FAILED, message, details)


class DeploymentJobRunner:
    """Drive one deployment job from authentication to a terminal state.

    Stages run strictly in sequence. A failure at any stage is terminal for
    the job: it is converted into a ``failed`` update at the stage boundary
    and never retried.
    """

    def __init__(
        self,
        handle: JobHandle,
        bundle: ConfigurationBundle,
        *,
        credential_gate: AzureCredentialGate,
        probe: ToolAvailabilityProbe,
        writer: ArtifactWriter,
        terraform: TerraformCli,
    ) -> None:
        """Initialize the runner with its collaborators."""
        self.handle = handle
        self.bundle = bundle
        self.credential_gate = credential_gate
        self.probe = probe
        self.writer = writer
        self.terraform = terraform

    async def run(self) -> DeploymentJob:
        """Run the job to a terminal state and return the final snapshot.

        Never raises: every failure, including cancellation, ends as a
        ``failed`` transition.
        """
        job_id = self.handle.id
        try:
            await self._run_stages()
        except asyncio.CancelledError:
            logger.info(f"Job {job_id} cancelled")
            self.handle.fail(
                CANCELLED_MESSAGE, "Cancellation requested, running process terminated"
            )
        except CredentialError as exc:
            logger.warning(f"Job {job_id} failed to authenticate: {exc.message}")
            self.handle.fail(
                f"Authentication failed: {exc.message}", "\n".join(exc.lines)
            )
        except ToolInvocationError as exc:
            logger.warning(f"Job {job_id} terraform {exc.operation} failed")
            self.handle.fail(
                f"Terraform {exc.operation} failed with exit code {exc.exit_code}",
                exc.output,
            )
        except DeploymentError as exc:
            logger.warning(f"Job {job_id} failed during {exc.operation}: {exc.message}")
            self.handle.fail(f"Deployment failed: {exc.message}")
        except ProcessError as exc:
            logger.warning(f"Job {job_id} process error: {exc.message}")
            self.handle.fail(f"Command error: {exc.message}")
        except Exception as exc:
            logger.exception(f"Job {job_id} hit an unexpected error")
            self.handle.fail(f"Deployment failed: {exc}")

        return self.handle.snapshot()

    def _stream(self, status: DeploymentStatus, message: str) -> OutputCallback:
        def on_output(chunk: str) -> None:
            self.handle.append(status, message, chunk)

        return on_output

    async def _run_stages(self) -> None:
        handle = self.handle

        handle.append(DeploymentStatus.AUTHENTICATING, "Authenticating with Azure")
        auth = await self.credential_gate.authenticate(
            on_output=self._stream(
                DeploymentStatus.AUTHENTICATING, "Azure authentication in progress"
            )
        )
        if not auth.success:
            raise CredentialError(auth.message, auth.diagnostic_lines)
        handle.append(
            DeploymentStatus.AUTHENTICATING,
            auth.message,
            "\n".join(auth.diagnostic_lines) or None,
        )
        credentials = auth.credentials

        handle.append(DeploymentStatus.PREPARING, "Checking Terraform installation")
        await self.probe.require(self.terraform.binary, operation="prepare")

        workdir = self.writer.create_working_directory(handle.subject_name)
        handle.set_working_directory(workdir)
        handle.append(
            DeploymentStatus.PREPARING, f"Preparing deployment directory: {workdir}"
        )
        written = await self.writer.write(self.bundle, workdir)
        handle.append(
            DeploymentStatus.PREPARING,
            f"Staged {len(written)} configuration file(s)",
            "\n".join(f.name for f in self.bundle.files),
        )

        if handle.action in (DeploymentAction.DEPLOY, DeploymentAction.PLAN):
            await self._plan(workdir, credentials)

        if handle.action == DeploymentAction.PLAN:
            handle.append(
                DeploymentStatus.COMPLETED,
                f"Terraform plan completed successfully for {handle.subject_name}",
            )
            return

        await self._apply(workdir, credentials)
        outputs = await self._collect_outputs(workdir, credentials)
        handle.set_outputs(outputs)
        handle.append(
            DeploymentStatus.COMPLETED,
            f"Deployment completed successfully for {handle.subject_name}",
            "\n".join(f"{key} = {value}" for key, value in outputs.items()) or None,
        )

    async def _plan(self, workdir: Path, credentials: Credentials | None) -> None:
        handle = self.handle
        handle.append(DeploymentStatus.PLANNING, "Initializing Terraform")
        await self.terraform.init(
            workdir,
            credentials,
            on_output=self._stream(
                DeploymentStatus.PLANNING, "Terraform initialization in progress"
            ),
        )

        handle.append(DeploymentStatus.PLANNING, "Planning Terraform deployment")
        result = await self.terraform.plan(
            workdir,
            credentials,
            on_output=self._stream(
                DeploymentStatus.PLANNING, "Terraform plan in progress"
            ),
        )
        handle.set_plan_output(result.output)
        handle.append(DeploymentStatus.PLANNING, "Terraform plan created")

    async def _apply(self, workdir: Path, credentials: Credentials | None) -> None:
        handle = self.handle
        if not self.terraform.has_plan(workdir):
            handle.append(
                DeploymentStatus.PLANNING,
                f"No plan artifact '{self.terraform.plan_file}' found, "
                "running terraform plan before apply",
            )
            await self._plan(workdir, credentials)

        handle.append(DeploymentStatus.APPLYING, "Applying Terraform deployment")
        await self.terraform.apply(
            workdir,
            credentials,
            on_output=self._stream(
                DeploymentStatus.APPLYING, "Terraform apply in progress"
            ),
        )
        handle.append(DeploymentStatus.APPLYING, "Getting Terraform outputs")

    async def _collect_outputs(
        self, workdir: Path, credentials: Credentials | None
    ) -> dict[str, str]:
        """Collect outputs; failures degrade to an empty mapping with a warning."""
        try:
            return await self.terraform.output(workdir, credentials)
        except (OutputParseError, ToolInvocationError) as exc:
            details = exc.output if isinstance(exc, ToolInvocationError) else None
            message = exc.message
        except ProcessError as exc:
            details = None
            message = exc.message
        except Exception as exc:
            logger.exception(f"Job {self.handle.id} output collection crashed")
            details = None
            message = str(exc) or type(exc).__name__

        logger.warning(f"Job {self.handle.id} outputs unavailable: {message}")
        self.handle.append(
            DeploymentStatus.APPLYING,
            f"Warning: could not collect Terraform outputs: {message}",
            details,
        )
        return {}
