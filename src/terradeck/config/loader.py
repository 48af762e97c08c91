"""Configuration loader for the TerraDeck orchestrator.

Resolves an ``OrchestratorConfig`` from CLI overrides, an optional YAML file
and ``TERRADECK_*`` environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from terradeck.config.defaults import DEFAULT_CONFIG_FILE, DEFAULT_ORCHESTRATOR_CONFIG
from terradeck.config.validator import describe_config_errors
from terradeck.lib.errors import ConfigError
from terradeck.lib.logging_config import get_logger
from terradeck.models.config import OrchestratorConfig

logger = get_logger(__name__)

# Environment variable to field name mapping
ENV_VAR_MAP = {
    "work_root": "TERRADECK_WORK_ROOT",
    "terraform_binary": "TERRADECK_TERRAFORM_BINARY",
    "azure_cli_binary": "TERRADECK_AZURE_CLI_BINARY",
    "plan_file": "TERRADECK_PLAN_FILE",
    "process_timeout": "TERRADECK_PROCESS_TIMEOUT",
    "login_mode": "TERRADECK_LOGIN_MODE",
    "runner": "TERRADECK_RUNNER",
    "bundle_root": "TERRADECK_BUNDLE_ROOT",
}


def _get_env_value(field_name: str, env_vars: Mapping[str, str]) -> Any | None:
    """Get the raw environment variable value for a field.

    Values are left as strings; pydantic coerces them during validation.
    """
    env_var_name = ENV_VAR_MAP.get(field_name)
    if not env_var_name:
        return None
    value = env_vars.get(env_var_name)
    if value is None or value == "":
        return None
    return value


class ConfigLoader:
    """Loads and validates orchestrator configuration."""

    def parse_yaml(self, file_path: str | Path) -> dict[str, Any]:
        """Parse a YAML configuration file.

        Args:
            file_path: Path to the YAML file

        Returns:
            Parsed mapping (empty for an empty file)

        Raises:
            ConfigError: If the file cannot be read or parsed
        """
        path = Path(file_path)
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(
                "config_file",
                f"Configuration file not found at {path}: {e}",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse",
                f"Failed to parse YAML file {path}: {e}",
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "yaml_parse",
                f"Expected a mapping at the top of {path}, "
                f"got {type(content).__name__}",
            )
        return content

    def load(
        self,
        config_file: str | Path | None = None,
        overrides: Mapping[str, Any] | None = None,
        env_vars: Mapping[str, str] | None = None,
    ) -> OrchestratorConfig:
        """Resolve the orchestrator configuration.

        Configuration priority (highest to lowest):
        1. Explicit overrides (CLI flags)
        2. YAML configuration file
        3. Environment variables (TERRADECK_* vars)
        4. Built-in defaults

        Args:
            config_file: YAML file to read. When omitted, ``terradeck.yaml`` in
                the current directory is used if it exists.
            overrides: Values that take precedence over every other source.
                ``None`` values are ignored.
            env_vars: Environment mapping, defaults to ``os.environ``.

        Returns:
            Validated OrchestratorConfig

        Raises:
            ConfigError: If the file is invalid or validation fails
        """
        file_values: dict[str, Any] = {}
        file_label = str(config_file or DEFAULT_CONFIG_FILE)
        if config_file is not None:
            file_values = self.parse_yaml(config_file)
            logger.debug(f"Loaded configuration file {config_file}")
        elif Path(DEFAULT_CONFIG_FILE).is_file():
            file_values = self.parse_yaml(DEFAULT_CONFIG_FILE)
            logger.debug(f"Loaded configuration file {DEFAULT_CONFIG_FILE}")

        env = os.environ if env_vars is None else env_vars
        cli_values = {k: v for k, v in (overrides or {}).items() if v is not None}

        resolved: dict[str, Any] = {}
        sources: dict[str, str] = {}
        for field in OrchestratorConfig.model_fields:
            if field in cli_values:
                resolved[field] = cli_values[field]
                sources[field] = "command line"
            elif file_values.get(field) is not None:
                resolved[field] = file_values[field]
                sources[field] = file_label
            elif (env_value := _get_env_value(field, env)) is not None:
                resolved[field] = env_value
                sources[field] = ENV_VAR_MAP[field]
            elif DEFAULT_ORCHESTRATOR_CONFIG.get(field) is not None:
                resolved[field] = DEFAULT_ORCHESTRATOR_CONFIG[field]

        unknown = set(file_values) - set(OrchestratorConfig.model_fields)
        if unknown:
            raise ConfigError(
                "config_file",
                f"Unknown configuration keys: {', '.join(sorted(unknown))}",
            )

        try:
            return OrchestratorConfig(**resolved)
        except PydanticValidationError as e:
            error_text = "\n".join(describe_config_errors(e, sources))
            raise ConfigError(
                "orchestrator_validation",
                f"Invalid orchestrator configuration:\n{error_text}",
            ) from e
