"""Default configuration values for TerraDeck."""

# Orchestrator configuration defaults
DEFAULT_ORCHESTRATOR_CONFIG: dict[str, object] = {
    "work_root": ".terradeck/work",
    "terraform_binary": "terraform",
    "azure_cli_binary": "az",
    "plan_file": "tfplan",
    "process_timeout": None,  # seconds, None waits indefinitely
    "login_mode": "device_code",
    "runner": "subprocess",
    "bundle_root": None,
}

# Default config file looked up in the working directory
DEFAULT_CONFIG_FILE = "terradeck.yaml"

# Environment variables checked by the credential gate for a service principal
ARM_ENVIRONMENT_VARIABLES: tuple[str, ...] = (
    "ARM_CLIENT_ID",
    "ARM_CLIENT_SECRET",
    "ARM_TENANT_ID",
    "ARM_SUBSCRIPTION_ID",
)

# Installation hints shown when a tool is missing
TOOL_INSTALL_HINTS: dict[str, str] = {
    "terraform": (
        "Install Terraform: https://developer.hashicorp.com/terraform/downloads"
    ),
    "az": (
        "Install the Azure CLI: "
        "https://docs.microsoft.com/en-us/cli/azure/install-azure-cli"
    ),
}

# Grace period before a terminated process is killed
PROCESS_TERMINATE_GRACE_SECONDS = 5.0
