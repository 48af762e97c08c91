"""Pydantic models for orchestrator configuration."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LoginMode(str, Enum):
    """How the credential gate may log in when no session exists."""

    DEVICE_CODE = "device_code"
    INTERACTIVE = "interactive"
    DISABLED = "disabled"


class RunnerType(str, Enum):
    """Process runner implementation."""

    SUBPROCESS = "subprocess"
    SIMULATED = "simulated"


class OrchestratorConfig(BaseModel):
    """Resolved configuration for the deployment orchestrator.

    Attributes:
        work_root: Parent directory for per-job working directories
        terraform_binary: Terraform executable name or path
        azure_cli_binary: Azure CLI executable name or path
        plan_file: File name of the plan artifact inside a working directory
        process_timeout: Optional timeout in seconds for each tool invocation
        login_mode: Login flow used when no Azure session is present
        runner: Process runner implementation (simulated is a demo/test mode)
        bundle_root: Directory holding configuration bundles by reference id
        version_args: Arguments used to probe tool availability
    """

    model_config = ConfigDict(extra="forbid")

    work_root: Path = Field(
        default=Path(".terradeck/work"),
        description="Parent directory for per-job working directories",
    )
    terraform_binary: str = Field(default="terraform", min_length=1)
    azure_cli_binary: str = Field(default="az", min_length=1)
    plan_file: str = Field(default="tfplan", min_length=1)
    process_timeout: float | None = Field(
        default=None, gt=0, description="Timeout in seconds per tool invocation"
    )
    login_mode: LoginMode = Field(default=LoginMode.DEVICE_CODE)
    runner: RunnerType = Field(default=RunnerType.SUBPROCESS)
    bundle_root: Path | None = Field(
        default=None, description="Directory containing bundles by reference id"
    )
    version_args: list[str] = Field(default_factory=lambda: ["--version"])

    @field_validator("plan_file")
    @classmethod
    def validate_plan_file(cls, v: str) -> str:
        """Plan file must be a bare file name."""
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"plan_file must be a file name, got: {v}")
        return v
