"""TerraDeck - drive Terraform deployments to Azure.

TerraDeck stages generated Terraform configuration into isolated working
directories, checks Azure credentials, runs plan and apply, and exposes
each deployment's progress as a pollable job.

Main features:
- Per-job deployment state machine with an append-only update history
- Concurrent job registry with cancellation
- Azure credential gate (service principal, CLI session, device-code login)
- HTTP API and command line front ends
"""

from terradeck.config.loader import ConfigLoader
from terradeck.lib.errors import ConfigError, DeploymentError, TerraDeckError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "DeploymentError",
    "TerraDeckError",
]
