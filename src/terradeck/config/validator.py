"""Readable messages for invalid orchestrator settings."""

from collections.abc import Mapping

from pydantic import ValidationError as PydanticValidationError

_VALUE_ERROR_PREFIX = "Value error, "


def describe_config_errors(
    exc: PydanticValidationError, sources: Mapping[str, str] | None = None
) -> list[str]:
    """Describe every invalid setting on its own line.

    Each line names the setting, where its value came from when known, and
    what is wrong with it.

    Args:
        exc: Validation error raised by ``OrchestratorConfig``.
        sources: Setting name to the source of its value, such as
            ``"command line"`` or ``"TERRADECK_PLAN_FILE"``.

    Returns:
        One message per invalid setting.

    Example:
        ``plan_file (from TERRADECK_PLAN_FILE): plan_file must be a file name``
    """
    sources = sources or {}
    lines: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        setting = ".".join(str(part) for part in loc) if loc else "configuration"

        if error.get("type") == "extra_forbidden":
            reason = "unknown setting"
        else:
            reason = str(error.get("msg", "invalid value"))
            reason = reason.removeprefix(_VALUE_ERROR_PREFIX)

        source = sources.get(str(loc[0])) if loc else None
        label = f"{setting} (from {source})" if source else setting
        lines.append(f"{label}: {reason}")

    return lines or ["configuration is invalid"]
