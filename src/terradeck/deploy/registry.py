"""In-memory registry of deployment jobs.

The registry is the single point of truth polled by callers. It allocates
job ids, starts one asyncio task per job and hands out read-only snapshots.
State lives for the lifetime of the process; nothing is persisted.
"""

from __future__ import annotations

import asyncio
import threading

from ulid import ULID

from terradeck.deploy.credentials import AzureCredentialGate
from terradeck.deploy.job import CANCELLED_MESSAGE, DeploymentJobRunner, JobHandle
from terradeck.deploy.probe import ToolAvailabilityProbe
from terradeck.deploy.process import (
    BaseProcessRunner,
    ProcessRunner,
    SimulatedProcessRunner,
)
from terradeck.deploy.staging import ArtifactWriter
from terradeck.deploy.terraform import TerraformCli
from terradeck.lib.logging_config import get_logger
from terradeck.models.config import OrchestratorConfig, RunnerType
from terradeck.models.deployment import (
    ConfigurationBundle,
    DeploymentAction,
    DeploymentJob,
)

logger = get_logger(__name__)


def create_process_runner(config: OrchestratorConfig) -> BaseProcessRunner:
    """Create the process runner selected by the configuration."""
    if config.runner == RunnerType.SIMULATED:
        logger.warning("Using simulated process runner: no commands will be executed")
        return SimulatedProcessRunner()
    return ProcessRunner()


class DeploymentRegistry:
    """Concurrency-safe map of job id to deployment job.

    Attributes:
        config: Orchestrator configuration
        runner: Process runner shared by all jobs
        credential_gate: Credential gate shared by all jobs
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        runner: BaseProcessRunner | None = None,
        credential_gate: AzureCredentialGate | None = None,
    ) -> None:
        """Initialize the registry and the collaborators shared by its jobs.

        Args:
            config: Orchestrator configuration, defaults to built-in values.
            runner: Process runner; created from ``config.runner`` if omitted.
            credential_gate: Credential gate; an Azure CLI gate if omitted.
        """
        self.config = config or OrchestratorConfig()
        self.runner = runner or create_process_runner(self.config)
        self.credential_gate = credential_gate or AzureCredentialGate(
            self.runner,
            azure_cli=self.config.azure_cli_binary,
            login_mode=self.config.login_mode,
            timeout=self.config.process_timeout,
        )
        self.probe = ToolAvailabilityProbe(self.runner, self.config.version_args)
        self.writer = ArtifactWriter(self.config.work_root)
        self.terraform = TerraformCli(
            self.runner,
            binary=self.config.terraform_binary,
            plan_file=self.config.plan_file,
            timeout=self.config.process_timeout,
        )

        self._jobs: dict[str, JobHandle] = {}
        self._tasks: dict[str, asyncio.Task[DeploymentJob]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(
        self,
        subject_name: str,
        bundle: ConfigurationBundle,
        action: DeploymentAction = DeploymentAction.DEPLOY,
    ) -> str:
        """Register a job and start it in the background.

        Must be called with a running event loop. Returns without waiting
        for any stage to complete.

        Returns:
            The new job id.
        """
        loop = asyncio.get_running_loop()
        job_id = str(ULID())
        handle = JobHandle.create(job_id, subject_name, action)
        runner = DeploymentJobRunner(
            handle,
            bundle,
            credential_gate=self.credential_gate,
            probe=self.probe,
            writer=self.writer,
            terraform=self.terraform,
        )

        with self._lock:
            self._jobs[job_id] = handle
            task = loop.create_task(runner.run(), name=f"deployment-{job_id}")
            self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._on_done(handle, t))

        logger.info(
            f"Created deployment job {job_id} for '{subject_name}' "
            f"({action.value}, {len(bundle.files)} file(s))"
        )
        return job_id

    def _on_done(self, handle: JobHandle, task: asyncio.Task[DeploymentJob]) -> None:
        with self._lock:
            self._tasks.pop(handle.id, None)

        if task.cancelled():
            # Cancelled before the runner body started
            handle.fail(CANCELLED_MESSAGE)
        elif (exc := task.exception()) is not None:
            logger.error(f"Job {handle.id} task crashed: {exc!r}")
            handle.fail(f"Deployment failed: {exc}")

        logger.info(f"Deployment job {handle.id} finished: {handle.status.value}")

    def get(self, job_id: str) -> DeploymentJob | None:
        """Return a snapshot of a job, or None if unknown."""
        with self._lock:
            handle = self._jobs.get(job_id)
        return handle.snapshot() if handle is not None else None

    def list(self) -> list[DeploymentJob]:
        """Return snapshots of all known jobs, newest first."""
        with self._lock:
            handles = list(self._jobs.values())
        jobs = [handle.snapshot() for handle in handles]
        return sorted(jobs, key=lambda job: (job.started_at, job.id), reverse=True)

    def cancel(self, job_id: str) -> bool:
        """Request cancellation of a running job.

        The running process is terminated and the job ends as ``failed``
        with a cancellation message.

        Returns:
            True if a running job was asked to cancel, False if the job is
            unknown or already finished.
        """
        with self._lock:
            task = self._tasks.get(job_id)
        if task is None or task.done():
            return False
        logger.info(f"Cancelling deployment job {job_id}")
        return task.cancel()

    async def wait(self, job_id: str, timeout: float | None = None) -> DeploymentJob:
        """Wait for a job to finish and return its final snapshot.

        Raises:
            KeyError: If the job is unknown.
            asyncio.TimeoutError: If the job does not finish in time.
        """
        with self._lock:
            handle = self._jobs.get(job_id)
            task = self._tasks.get(job_id)
        if handle is None:
            raise KeyError(job_id)
        if task is not None:
            _, pending = await asyncio.wait({task}, timeout=timeout)
            if pending:
                raise asyncio.TimeoutError(
                    f"Deployment job {job_id} still running after {timeout} seconds"
                )
        return handle.snapshot()

    async def shutdown(self) -> None:
        """Cancel all running jobs and wait for them to finish."""
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running deployment job(s)")
