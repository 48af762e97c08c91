"""Pydantic models for deployment jobs.

This module defines the records tracked by the deployment registry, the
configuration bundle consumed by the staging step, and the typed results of
the external tools (process results, credential checks, Terraform outputs).
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Return the current UTC timestamp."""
    return datetime.now(timezone.utc)


class DeploymentStatus(str, Enum):
    """Lifecycle states of a deployment job, in stage order."""

    INITIALIZING = "initializing"
    AUTHENTICATING = "authenticating"
    PREPARING = "preparing"
    PLANNING = "planning"
    APPLYING = "applying"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True for states that end a job."""
        return self in (DeploymentStatus.COMPLETED, DeploymentStatus.FAILED)

    @property
    def rank(self) -> int:
        """Position of the state in the lifecycle, used to enforce monotonicity."""
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = list(DeploymentStatus)


class DeploymentAction(str, Enum):
    """What a job should do once its configuration is staged."""

    DEPLOY = "deploy"
    PLAN = "plan"
    APPLY = "apply"


class DeploymentUpdate(BaseModel):
    """A single entry of a job's transition and log history."""

    model_config = ConfigDict(frozen=True)

    status: DeploymentStatus = Field(..., description="Job status at this update")
    message: str = Field(..., description="Human-readable message")
    details: str | None = Field(
        default=None, description="Raw details such as tool output"
    )
    timestamp: datetime = Field(default_factory=utc_now)

    def to_log(self) -> str:
        """Render the update as aggregated log text."""
        line = f"[{self.timestamp.isoformat()}] {self.status.value}: {self.message}"
        if self.details:
            line += f"\n{self.details}"
        return line


class DeploymentJob(BaseModel):
    """Deployment status record as seen by pollers.

    Attributes:
        id: Job identifier (ULID)
        subject_name: Label of what is being deployed, e.g. a repository name
        action: Requested action (deploy, plan or apply)
        status: Current status, always equal to the last update's status
        started_at: Creation timestamp
        finished_at: Set once when the job reaches a terminal state
        updates: Append-only history of updates
        logs: Concatenation of all update messages and details
        working_directory: Isolated directory staged for this job
        outputs: Flattened Terraform outputs, empty until collected
        plan_output: Output of the last successful plan
        error: Message of the failing update, if the job failed
    """

    id: str = Field(..., description="Job identifier")
    subject_name: str = Field(..., description="What is being deployed")
    action: DeploymentAction = Field(default=DeploymentAction.DEPLOY)
    status: DeploymentStatus = Field(default=DeploymentStatus.INITIALIZING)
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = Field(default=None)
    updates: list[DeploymentUpdate] = Field(default_factory=list)
    logs: str = Field(default="")
    working_directory: str | None = Field(default=None)
    outputs: dict[str, str] = Field(default_factory=dict)
    plan_output: str | None = Field(default=None)
    error: str | None = Field(default=None)

    @property
    def is_finished(self) -> bool:
        """Return True once the job reached completed or failed."""
        return self.status.is_terminal


_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")


class ConfigurationFile(BaseModel):
    """One file of a configuration bundle, written verbatim when staged."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Relative file path")
    content: str = Field(default="", description="File content")

    @property
    def relative_path(self) -> PurePosixPath:
        """Return the file name as a relative POSIX path."""
        return PurePosixPath(self.name.replace("\\", "/"))

    def is_safe(self) -> bool:
        """Return True if the name stays inside the staging directory."""
        path = self.relative_path
        if path.is_absolute() or _WINDOWS_DRIVE.match(self.name):
            return False
        return ".." not in path.parts and str(path) not in ("", ".")


class ConfigurationBundle(BaseModel):
    """Ordered set of configuration files produced by the generation pipeline."""

    model_config = ConfigDict(frozen=True)

    files: tuple[ConfigurationFile, ...] = Field(default=())

    @field_validator("files", mode="before")
    @classmethod
    def coerce_files(cls, v: Any) -> Any:
        """Accept lists as well as tuples."""
        if isinstance(v, list):
            return tuple(v)
        return v

    @classmethod
    def from_mapping(cls, files: dict[str, str]) -> ConfigurationBundle:
        """Build a bundle from a name to content mapping, preserving order."""
        return cls(
            files=tuple(
                ConfigurationFile(name=name, content=content)
                for name, content in files.items()
            )
        )

    def __len__(self) -> int:
        return len(self.files)


class Credentials(BaseModel):
    """Credential material passed explicitly to child processes.

    The environment values are merged over the inherited environment of each
    spawned process and never written to ``os.environ``.
    """

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Where the credential came from")
    identity: str = Field(default="", description="Active identity label")
    environment: dict[str, str] = Field(default_factory=dict, repr=False)


class AuthResult(BaseModel):
    """Outcome of a credential gate check."""

    success: bool
    is_logged_in: bool = False
    is_cli_installed: bool = True
    message: str = ""
    diagnostic_lines: list[str] = Field(default_factory=list)
    credentials: Credentials | None = Field(default=None, exclude=True)


class ProcessResult(BaseModel):
    """Successful result of an external process invocation."""

    command: str
    args: list[str] = Field(default_factory=list)
    exit_code: int = 0
    output: str = ""


class TerraformOutput(BaseModel):
    """One entry of ``terraform output -json``."""

    model_config = ConfigDict(extra="ignore")

    value: Any = Field(..., description="Output value, required in every entry")
    type: Any = None
    sensitive: bool = False


class AzureUser(BaseModel):
    """User block of an Azure CLI account document."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    type: str = ""


class AzureAccount(BaseModel):
    """Subset of ``az account show`` / ``az login`` output used for diagnostics."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = ""
    tenant_id: str = Field(default="", alias="tenantId")
    user: AzureUser = Field(default_factory=AzureUser)
