"""Tests for configuration error descriptions."""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from terradeck.config.validator import describe_config_errors
from terradeck.models.config import OrchestratorConfig


def _validation_error(**values: object) -> PydanticValidationError:
    with pytest.raises(PydanticValidationError) as exc_info:
        OrchestratorConfig(**values)
    return exc_info.value


@pytest.mark.unit
class TestDescribeConfigErrors:
    """Tests for describe_config_errors."""

    def test_names_setting_and_source(self) -> None:
        exc = _validation_error(plan_file="plans/tfplan")

        lines = describe_config_errors(exc, {"plan_file": "TERRADECK_PLAN_FILE"})

        assert len(lines) == 1
        assert lines[0].startswith("plan_file (from TERRADECK_PLAN_FILE): ")
        assert "plan_file must be a file name" in lines[0]
        assert "Value error" not in lines[0]

    def test_without_source(self) -> None:
        exc = _validation_error(process_timeout=0)

        lines = describe_config_errors(exc)

        assert lines[0].startswith("process_timeout: ")

    def test_unknown_setting(self) -> None:
        exc = _validation_error(terraform_bin="terraform")

        assert describe_config_errors(exc) == ["terraform_bin: unknown setting"]

    def test_one_line_per_setting(self) -> None:
        exc = _validation_error(process_timeout=-1, login_mode="browser")

        lines = describe_config_errors(
            exc, {"process_timeout": "command line", "login_mode": "terradeck.yaml"}
        )

        assert len(lines) == 2
        assert lines[0].startswith("process_timeout (from command line)")
        assert lines[1].startswith("login_mode (from terradeck.yaml)")
