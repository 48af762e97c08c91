"""TerraDeck deployment engine.

This package drives Terraform and the Azure CLI through the deployment
lifecycle: credential checks, staging, plan, apply and output collection.
"""

from terradeck.deploy.bundles import (
    BundleSource,
    DirectoryBundleSource,
    InMemoryBundleSource,
    read_bundle_directory,
)
from terradeck.deploy.credentials import AzureCredentialGate
from terradeck.deploy.job import DeploymentJobRunner, JobHandle
from terradeck.deploy.probe import ToolAvailabilityProbe
from terradeck.deploy.process import (
    BaseProcessRunner,
    ProcessRunner,
    SimulatedProcessRunner,
    SimulatedResponse,
)
from terradeck.deploy.registry import DeploymentRegistry
from terradeck.deploy.staging import ArtifactWriter
from terradeck.deploy.terraform import TerraformCli, parse_outputs

__all__ = [
    "ArtifactWriter",
    "AzureCredentialGate",
    "BaseProcessRunner",
    "BundleSource",
    "DeploymentJobRunner",
    "DeploymentRegistry",
    "DirectoryBundleSource",
    "InMemoryBundleSource",
    "JobHandle",
    "ProcessRunner",
    "SimulatedProcessRunner",
    "SimulatedResponse",
    "TerraformCli",
    "ToolAvailabilityProbe",
    "parse_outputs",
    "read_bundle_directory",
]
