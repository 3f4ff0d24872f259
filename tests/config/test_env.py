from __future__ import annotations

import pytest

from driftless.config import (
    ConfigurationError,
    MissingConfigurationError,
    env_bool,
    env_float,
    env_int,
    optional_env,
    require_env_vars,
)


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_lists_every_missing_name(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_B", raising=False)
    monkeypatch.setenv("MISSING_A", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_B", "MISSING_A"])

    assert "MISSING_A, MISSING_B" in str(exc.value)
    assert isinstance(exc.value, ConfigurationError)


def test_optional_env_strips_and_treats_blank_as_unset(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PADDED", "  value ")
    monkeypatch.setenv("BLANK", " ")

    assert optional_env("PADDED") == "value"
    assert optional_env("BLANK") is None


def test_numeric_loaders(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOME_INT", "4")
    monkeypatch.setenv("SOME_FLOAT", "0.25")
    monkeypatch.delenv("UNSET_NUMBER", raising=False)

    assert env_int("SOME_INT", 1) == 4
    assert env_float("SOME_FLOAT", 1.0) == 0.25
    assert env_int("UNSET_NUMBER", 7) == 7

    monkeypatch.setenv("SOME_INT", "0")
    with pytest.raises(ConfigurationError, match=">= 1"):
        env_int("SOME_INT", 1, minimum=1)
    monkeypatch.setenv("SOME_FLOAT", "fast")
    with pytest.raises(ConfigurationError, match="must be a number"):
        env_float("SOME_FLOAT", 1.0)


@pytest.mark.parametrize(("raw", "expected"), [("yes", True), ("ON", True), ("0", False)])
def test_env_bool(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("SOME_FLAG", raw)

    assert env_bool("SOME_FLAG", not expected) is expected


def test_env_bool_rejects_other_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOME_FLAG", "perhaps")

    with pytest.raises(ConfigurationError, match="must be a boolean"):
        env_bool("SOME_FLAG", True)  # noqa: FBT003
