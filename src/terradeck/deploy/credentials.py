"""Azure credential gate.

Checks the credential sources Terraform's azurerm provider can use, in
order: service principal environment variables, an existing Azure CLI
session, and finally an Azure CLI login. The outcome is always an
``AuthResult`` whose diagnostic lines name every source that was tried.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from terradeck.config.defaults import ARM_ENVIRONMENT_VARIABLES, TOOL_INSTALL_HINTS
from terradeck.deploy.probe import ToolAvailabilityProbe
from terradeck.deploy.process import BaseProcessRunner, OutputCallback
from terradeck.lib.errors import ProcessError, ProcessFailedError
from terradeck.lib.logging_config import get_logger
from terradeck.models.config import LoginMode
from terradeck.models.deployment import AuthResult, AzureAccount, Credentials

logger = get_logger(__name__)

_ACCOUNT_LIST = TypeAdapter(list[AzureAccount])


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1] if lines else ""


def parse_account(output: str) -> AzureAccount:
    """Parse ``az account show`` output.

    Raises:
        ValueError: If the output is not a valid account document.
    """
    try:
        return AzureAccount.model_validate_json(output)
    except PydanticValidationError as exc:
        raise ValueError(
            f"Unexpected account output: {exc.error_count()} errors"
        ) from exc


def parse_login(output: str) -> AzureAccount:
    """Parse ``az login`` output and return the first account.

    The login command prints device-code prompts before the JSON document,
    so parsing starts at the first ``[``.

    Raises:
        ValueError: If no account could be parsed.
    """
    start = output.find("[")
    if start < 0:
        raise ValueError("Login response did not contain account information")
    try:
        accounts = _ACCOUNT_LIST.validate_json(output[start:])
    except PydanticValidationError as exc:
        raise ValueError(
            f"Login response did not contain expected account information: "
            f"{exc.error_count()} errors"
        ) from exc
    if not accounts:
        raise ValueError("Login response contained no accounts")
    return accounts[0]


class AzureCredentialGate:
    """Authenticate against Azure before Terraform runs.

    Attributes:
        runner: Process runner used for Azure CLI invocations
        azure_cli: Azure CLI executable
        login_mode: Login flow used when no session exists
    """

    def __init__(
        self,
        runner: BaseProcessRunner,
        azure_cli: str = "az",
        login_mode: LoginMode = LoginMode.DEVICE_CODE,
        env_vars: Mapping[str, str] | None = None,
        timeout: float | None = None,
        cwd: str | Path = ".",
    ) -> None:
        """Initialize the credential gate.

        Args:
            runner: Process runner used for Azure CLI invocations.
            azure_cli: Azure CLI executable name or path.
            login_mode: Login flow used when no session exists.
            env_vars: Environment to read service principal secrets from.
                Defaults to ``os.environ`` at authentication time.
            timeout: Timeout in seconds for each Azure CLI invocation.
            cwd: Directory the Azure CLI runs in.
        """
        self.runner = runner
        self.azure_cli = azure_cli
        self.login_mode = login_mode
        self._env_vars = env_vars
        self.timeout = timeout
        self.cwd = cwd
        self._probe = ToolAvailabilityProbe(runner, cwd=cwd)

    def _environment(self) -> Mapping[str, str]:
        return os.environ if self._env_vars is None else self._env_vars

    def _environment_credentials(self, lines: list[str]) -> Credentials | None:
        env = self._environment()
        present = {
            name: env[name] for name in ARM_ENVIRONMENT_VARIABLES if env.get(name)
        }
        if len(present) == len(ARM_ENVIRONMENT_VARIABLES):
            client_id = present["ARM_CLIENT_ID"]
            lines.append(f"Using service principal from environment: {client_id}")
            lines.append(f"Subscription: {present['ARM_SUBSCRIPTION_ID']}")
            return Credentials(
                source="environment",
                identity=f"service principal {client_id}",
                environment=present,
            )

        if present:
            missing = [n for n in ARM_ENVIRONMENT_VARIABLES if n not in present]
            lines.append(
                "Environment: service principal variables incomplete, "
                f"missing {', '.join(missing)}"
            )
        else:
            lines.append(
                "Environment: no service principal variables set "
                f"({', '.join(ARM_ENVIRONMENT_VARIABLES)})"
            )
        return None

    async def authenticate(self, on_output: OutputCallback | None = None) -> AuthResult:
        """Obtain a usable credential. Never raises.

        Args:
            on_output: Receives login output as it arrives, so device-code
                prompts reach the caller's log.

        Returns:
            AuthResult describing the outcome and every source tried.
        """
        lines: list[str] = []

        credentials = self._environment_credentials(lines)
        if credentials is not None:
            return AuthResult(
                success=True,
                is_logged_in=True,
                message="Using service principal credentials from environment",
                diagnostic_lines=lines,
                credentials=credentials,
            )

        if not await self._probe.is_available(self.azure_cli):
            lines.append(
                "Azure CLI session: Azure CLI is not installed in this environment."
            )
            hint = TOOL_INSTALL_HINTS.get(Path(self.azure_cli).name)
            if hint:
                lines.append(hint)
            return AuthResult(
                success=False,
                is_logged_in=False,
                is_cli_installed=False,
                message="Azure CLI is not installed",
                diagnostic_lines=lines,
            )

        lines.append("Checking Azure CLI login status...")
        account = await self._current_account(lines)
        if account is not None:
            lines.append(f"Already logged in as: {account.user.name or 'unknown'}")
            lines.append(f"Subscription: {account.name} ({account.id})")
            return AuthResult(
                success=True,
                is_logged_in=True,
                message="Already authenticated with Azure",
                diagnostic_lines=lines,
                credentials=self._cli_credentials(account),
            )

        if self.login_mode == LoginMode.DISABLED:
            lines.append("Azure CLI login: skipped, login is disabled by configuration")
            return AuthResult(
                success=False,
                is_logged_in=False,
                message="Failed to authenticate with Azure",
                diagnostic_lines=lines,
            )

        lines.append("Starting Azure CLI login process...")
        account = await self._login(lines, on_output)
        if account is None:
            return AuthResult(
                success=False,
                is_logged_in=False,
                message="Failed to authenticate with Azure",
                diagnostic_lines=lines,
            )

        lines.append(f"Successfully logged in as: {account.user.name or 'unknown'}")
        lines.append(f"Subscription: {account.name} ({account.id})")
        return AuthResult(
            success=True,
            is_logged_in=True,
            message="Successfully authenticated with Azure",
            diagnostic_lines=lines,
            credentials=self._cli_credentials(account),
        )

    async def _current_account(self, lines: list[str]) -> AzureAccount | None:
        try:
            result = await self.runner.run(
                self.azure_cli,
                ["account", "show", "--output", "json"],
                self.cwd,
                timeout=self.timeout,
            )
        except ProcessFailedError as exc:
            reason = _last_line(exc.output) or f"exit code {exc.exit_code}"
            lines.append(f"Azure CLI session: not logged in ({reason})")
            return None
        except ProcessError as exc:
            lines.append(f"Azure CLI session: {exc.message}")
            return None

        try:
            return parse_account(result.output)
        except ValueError as exc:
            lines.append(f"Azure CLI session: {exc}")
            return None

    async def _login(
        self, lines: list[str], on_output: OutputCallback | None
    ) -> AzureAccount | None:
        args = ["login", "--output", "json"]
        if self.login_mode == LoginMode.DEVICE_CODE:
            args.insert(1, "--use-device-code")

        try:
            result = await self.runner.run(
                self.azure_cli,
                args,
                self.cwd,
                on_output=on_output,
                timeout=self.timeout,
            )
        except ProcessFailedError as exc:
            reason = _last_line(exc.output) or f"exit code {exc.exit_code}"
            lines.append(f"Azure CLI login: failed ({reason})")
            return None
        except ProcessError as exc:
            lines.append(f"Azure CLI login: {exc.message}")
            return None

        try:
            return parse_login(result.output)
        except ValueError as exc:
            lines.append(f"Login error: {exc}")
            return None

    @staticmethod
    def _cli_credentials(account: AzureAccount) -> Credentials:
        # azurerm reads the CLI session; the subscription is pinned per child
        return Credentials(
            source="azure_cli",
            identity=account.user.name or account.id,
            environment={"ARM_SUBSCRIPTION_ID": account.id},
        )


def auth_result_payload(result: AuthResult) -> dict[str, Any]:
    """Return a JSON-safe summary of an AuthResult without secrets."""
    payload = result.model_dump(mode="json")
    payload["source"] = result.credentials.source if result.credentials else None
    payload["identity"] = result.credentials.identity if result.credentials else None
    return payload
