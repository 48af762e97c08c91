"""Custom exception hierarchy for TerraDeck configuration and deployments."""

from __future__ import annotations

from collections.abc import Sequence


class TerraDeckError(Exception):
    """Base exception for all TerraDeck errors.

    All TerraDeck-specific exceptions inherit from this class, enabling
    centralized exception handling and error tracking.
    """

    pass


class ConfigError(TerraDeckError):
    """Exception raised for configuration errors.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(TerraDeckError):
    """Exception raised when a deployment operation fails.

    Attributes:
        operation: The deployment operation that failed (e.g. "plan")
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with operation context.

        Args:
            operation: Name of the failing operation
            message: Descriptive error message
        """
        self.operation = operation
        self.message = message
        super().__init__(f"Deployment {operation} failed: {message}")


class ToolUnavailableError(DeploymentError):
    """Raised when a required external binary cannot be executed."""

    def __init__(self, tool: str, operation: str = "prepare", hint: str = "") -> None:
        """Create an error naming the missing tool.

        Args:
            tool: Name of the missing binary
            operation: Operation that required the tool
            hint: Optional installation hint appended to the message
        """
        self.tool = tool
        self.hint = hint
        message = f"Required tool '{tool}' is not installed or not executable."
        if hint:
            message += f" {hint}"
        super().__init__(operation=operation, message=message)


class CredentialError(DeploymentError):
    """Raised when no usable cloud credential could be obtained.

    Attributes:
        lines: Diagnostic lines describing every credential source tried
    """

    def __init__(self, message: str, lines: Sequence[str] = ()) -> None:
        """Create a credential error with its diagnostic lines."""
        self.lines = list(lines)
        super().__init__(operation="authenticate", message=message)


class StagingError(DeploymentError):
    """Raised when configuration files cannot be written to a working directory."""

    def __init__(self, message: str) -> None:
        """Create a staging error."""
        super().__init__(operation="stage", message=message)


class BundleNotFoundError(DeploymentError):
    """Raised when a configuration bundle reference cannot be resolved."""

    def __init__(self, reference_id: str) -> None:
        """Create an error for an unknown bundle reference."""
        self.reference_id = reference_id
        super().__init__(
            operation="fetch_bundle",
            message=f"No configuration bundle found for reference '{reference_id}'",
        )


class BundleReadError(DeploymentError):
    """Raised when a file of a configuration bundle cannot be read as text."""

    def __init__(self, path: str, reason: str) -> None:
        """Create an error naming the unreadable file."""
        self.path = path
        self.reason = reason
        super().__init__(
            operation="read_bundle",
            message=f"Cannot read configuration file '{path}': {reason}",
        )


class OutputParseError(DeploymentError):
    """Raised when Terraform outputs cannot be parsed.

    Never fails a job; the caller degrades to an empty outputs map.
    """

    def __init__(self, message: str) -> None:
        """Create an output parse error."""
        super().__init__(operation="output", message=message)


class ProcessError(TerraDeckError):
    """Base exception for external process failures.

    Attributes:
        command: The executable that was invoked
    """

    def __init__(self, command: str, message: str) -> None:
        """Initialize ProcessError with the command name."""
        self.command = command
        self.message = message
        super().__init__(message)


class ProcessLaunchError(ProcessError):
    """Raised when a process cannot be started at all.

    Covers missing binaries, permission problems and invalid working
    directories.
    """

    def __init__(self, command: str, reason: str) -> None:
        """Create a launch error.

        Args:
            command: The executable that could not be started
            reason: Description of the OS-level failure
        """
        self.reason = reason
        super().__init__(command, f"Failed to start '{command}': {reason}")


class ProcessFailedError(ProcessError):
    """Raised when a process exits with a non-zero exit code.

    Attributes:
        args_list: Arguments the command was invoked with
        exit_code: Process exit code (-1 when terminated on timeout)
        output: Combined stdout/stderr captured from the process
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        exit_code: int,
        output: str,
    ) -> None:
        """Create a failure carrying the exit code and captured output."""
        self.args_list = list(args)
        self.exit_code = exit_code
        self.output = output
        command_line = " ".join([command, *self.args_list])
        super().__init__(
            command, f"Command '{command_line}' failed with exit code {exit_code}"
        )


class ToolInvocationError(DeploymentError):
    """Raised when Terraform exits non-zero during init, plan, apply or output.

    Attributes:
        exit_code: Exit code reported by the tool
        output: The tool's own diagnostics, kept verbatim
    """

    def __init__(self, operation: str, failure: ProcessFailedError) -> None:
        """Wrap a process failure for a deployment stage."""
        self.exit_code = failure.exit_code
        self.output = failure.output
        super().__init__(operation=operation, message=failure.message)
