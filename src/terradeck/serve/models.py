"""Request and response models for the deployment API."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from terradeck.models.deployment import ConfigurationFile, DeploymentAction


class ServerState(str, Enum):
    """Lifecycle states of the deployment server."""

    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class CreateDeploymentRequest(BaseModel):
    """Body of ``POST /deployments``.

    Exactly one of ``reference_id`` and ``files`` must be provided.
    """

    model_config = ConfigDict(extra="forbid")

    reference_id: str | None = Field(
        default=None, description="Reference of a bundle known to the bundle source"
    )
    files: list[ConfigurationFile] | None = Field(
        default=None, description="Inline configuration files"
    )
    subject_name: str | None = Field(
        default=None, description="Label for the deployment, defaults to reference_id"
    )
    action: DeploymentAction = Field(default=DeploymentAction.DEPLOY)

    @model_validator(mode="after")
    def validate_source(self) -> CreateDeploymentRequest:
        """Require exactly one bundle source."""
        if (self.reference_id is None) == (self.files is None):
            raise ValueError("Provide exactly one of 'reference_id' or 'files'")
        if self.files is not None and self.subject_name is None:
            raise ValueError("'subject_name' is required with inline files")
        return self

    @property
    def resolved_subject_name(self) -> str:
        """Subject name, falling back to the reference id."""
        return self.subject_name or self.reference_id or "deployment"


class CreateDeploymentResponse(BaseModel):
    """Response of ``POST /deployments``."""

    job_id: str


class CancelDeploymentResponse(BaseModel):
    """Response of ``POST /deployments/{job_id}/cancel``."""

    job_id: str
    cancelled: bool


class HealthResponse(BaseModel):
    """Response of ``GET /health``."""

    status: str
    ready: bool
    total_jobs: int
    running_jobs: int
    uptime_seconds: float


class ProblemDetail(BaseModel):
    """RFC 7807 problem document."""

    type: str = "about:blank"
    title: str
    status: int
    detail: str | None = None
    instance: str | None = None
