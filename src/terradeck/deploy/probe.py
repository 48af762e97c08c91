"""Tool availability checks run before any state-changing step."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from terradeck.config.defaults import TOOL_INSTALL_HINTS
from terradeck.deploy.process import BaseProcessRunner
from terradeck.lib.errors import (
    ProcessFailedError,
    ProcessLaunchError,
    ToolUnavailableError,
)
from terradeck.lib.logging_config import get_logger

logger = get_logger(__name__)


class ToolAvailabilityProbe:
    """Check that an external binary can be executed.

    The probe runs a trivial invocation (``<tool> --version`` by default)
    and treats any launch failure or non-zero exit as "not available".
    """

    def __init__(
        self,
        runner: BaseProcessRunner,
        version_args: Sequence[str] = ("--version",),
        cwd: str | Path = ".",
    ) -> None:
        """Initialize the probe.

        Args:
            runner: Process runner used for the probe invocation.
            version_args: Arguments of the trivial invocation.
            cwd: Directory the probe runs in.
        """
        self.runner = runner
        self.version_args = list(version_args)
        self.cwd = cwd

    async def is_available(self, tool: str) -> bool:
        """Return True if ``tool`` can be executed. Never raises."""
        try:
            result = await self.runner.run(tool, self.version_args, self.cwd)
        except ProcessLaunchError as exc:
            logger.info(f"Tool '{tool}' is not available: {exc.reason}")
            return False
        except ProcessFailedError as exc:
            logger.info(
                f"Tool '{tool}' version check exited with code {exc.exit_code}"
            )
            return False

        lines = result.output.strip().splitlines()
        first_line = lines[0] if lines else ""
        logger.debug(f"Tool '{tool}' available: {first_line}")
        return True

    async def require(self, tool: str, operation: str = "prepare") -> None:
        """Raise ToolUnavailableError if ``tool`` cannot be executed.

        Args:
            tool: Executable name or path.
            operation: Operation reported in the error.

        Raises:
            ToolUnavailableError: If the probe fails.
        """
        if not await self.is_available(tool):
            hint = TOOL_INSTALL_HINTS.get(Path(tool).name, "")
            raise ToolUnavailableError(tool=tool, operation=operation, hint=hint)
