"""Terraform command wrapper.

Wraps ``init``, ``plan``, ``apply`` and ``output`` for one working directory
and parses the structured output document into a flat string mapping.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from terradeck.deploy.process import BaseProcessRunner, OutputCallback
from terradeck.lib.errors import (
    OutputParseError,
    ProcessFailedError,
    ToolInvocationError,
)
from terradeck.models.deployment import Credentials, ProcessResult, TerraformOutput

SENSITIVE_PLACEHOLDER = "(sensitive)"

_OUTPUTS = TypeAdapter(dict[str, TerraformOutput])


def parse_outputs(raw: str) -> dict[str, str]:
    """Parse ``terraform output -json`` into a flat key to string mapping.

    String values are kept verbatim, other JSON values are rendered as
    compact JSON, and sensitive values are masked.

    Raises:
        OutputParseError: If ``raw`` is not a mapping of output documents.

    Example:
        >>> parse_outputs('{"url": {"value": "https://x", "type": "string"}}')
        {'url': 'https://x'}
    """
    text = raw.strip()
    if not text:
        raise OutputParseError("Terraform returned no output document")
    try:
        outputs = _OUTPUTS.validate_json(text)
    except PydanticValidationError as exc:
        raise OutputParseError(
            f"Unexpected Terraform output format: {exc.errors()[0]['msg']}"
        ) from exc

    flattened: dict[str, str] = {}
    for key, output in outputs.items():
        if output.sensitive:
            flattened[key] = SENSITIVE_PLACEHOLDER
        elif isinstance(output.value, str):
            flattened[key] = output.value
        else:
            flattened[key] = json.dumps(output.value, separators=(",", ":"))
    return flattened


class TerraformCli:
    """Run Terraform commands in a working directory.

    Attributes:
        runner: Process runner used for every invocation
        binary: Terraform executable
        plan_file: Plan artifact file name
        timeout: Optional timeout in seconds per invocation
    """

    def __init__(
        self,
        runner: BaseProcessRunner,
        binary: str = "terraform",
        plan_file: str = "tfplan",
        timeout: float | None = None,
    ) -> None:
        """Initialize the wrapper."""
        self.runner = runner
        self.binary = binary
        self.plan_file = plan_file
        self.timeout = timeout

    def plan_path(self, workdir: Path) -> Path:
        """Return the plan artifact path inside ``workdir``."""
        return workdir / self.plan_file

    def has_plan(self, workdir: Path) -> bool:
        """Return True if a non-empty plan artifact exists in ``workdir``."""
        path = self.plan_path(workdir)
        return path.is_file() and path.stat().st_size > 0

    async def init(
        self,
        workdir: Path,
        credentials: Credentials | None = None,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        """Run ``terraform init``."""
        return await self._run(
            "init",
            ["init", "-input=false", "-no-color"],
            workdir,
            credentials,
            on_output,
        )

    async def plan(
        self,
        workdir: Path,
        credentials: Credentials | None = None,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        """Run ``terraform plan`` writing the plan artifact."""
        return await self._run(
            "plan",
            ["plan", "-input=false", "-no-color", f"-out={self.plan_file}"],
            workdir,
            credentials,
            on_output,
        )

    async def apply(
        self,
        workdir: Path,
        credentials: Credentials | None = None,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        """Run ``terraform apply`` against the saved plan artifact."""
        return await self._run(
            "apply",
            ["apply", "-input=false", "-no-color", "-auto-approve", self.plan_file],
            workdir,
            credentials,
            on_output,
        )

    async def output(
        self, workdir: Path, credentials: Credentials | None = None
    ) -> dict[str, str]:
        """Run ``terraform output -json`` and parse it.

        Raises:
            ToolInvocationError: If the command exits non-zero.
            OutputParseError: If the output cannot be parsed.
        """
        result = await self._run("output", ["output", "-json"], workdir, credentials)
        return parse_outputs(result.output)

    async def _run(
        self,
        operation: str,
        args: list[str],
        workdir: Path,
        credentials: Credentials | None,
        on_output: OutputCallback | None = None,
    ) -> ProcessResult:
        try:
            return await self.runner.run(
                self.binary,
                args,
                workdir,
                credentials=credentials,
                on_output=on_output,
                timeout=self.timeout,
            )
        except ProcessFailedError as exc:
            raise ToolInvocationError(operation, exc) from exc
