"""Pytest configuration and shared fixtures for TerraDeck tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from terradeck.deploy.credentials import AzureCredentialGate
from terradeck.deploy.process import SimulatedProcessRunner
from terradeck.deploy.registry import DeploymentRegistry
from terradeck.models.config import OrchestratorConfig, RunnerType
from terradeck.models.deployment import ConfigurationBundle

MAIN_TF = """\
resource "azurerm_resource_group" "main" {
  name     = "rg-demo"
  location = "westeurope"
}
"""


@pytest.fixture
def simulated_runner() -> SimulatedProcessRunner:
    """Simulated runner answering like a healthy Terraform and Azure CLI."""
    return SimulatedProcessRunner()


@pytest.fixture
def credential_gate(simulated_runner: SimulatedProcessRunner) -> AzureCredentialGate:
    """Credential gate that ignores the host environment."""
    return AzureCredentialGate(simulated_runner, env_vars={})


@pytest.fixture
def sample_bundle() -> ConfigurationBundle:
    """Two-file Terraform bundle."""
    return ConfigurationBundle.from_mapping(
        {
            "main.tf": MAIN_TF,
            "variables.tf": 'variable "location" { default = "westeurope" }\n',
        }
    )


@pytest.fixture
def orchestrator_config(tmp_path: Path) -> OrchestratorConfig:
    """Configuration with a per-test work root and the simulated runner."""
    return OrchestratorConfig(work_root=tmp_path / "work", runner=RunnerType.SIMULATED)


@pytest.fixture
def registry(
    orchestrator_config: OrchestratorConfig,
    simulated_runner: SimulatedProcessRunner,
    credential_gate: AzureCredentialGate,
) -> DeploymentRegistry:
    """Registry wired to the simulated runner."""
    return DeploymentRegistry(
        orchestrator_config,
        runner=simulated_runner,
        credential_gate=credential_gate,
    )
