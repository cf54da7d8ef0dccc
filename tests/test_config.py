"""Test GateConfig."""

import pytest

from phiguard.config import GateConfig
from phiguard.exceptions import ConfigurationError
from phiguard.schemas.base import PolicyMode


class TestGateConfig:
    """Test defaults and validation."""

    def test_defaults(self):
        config = GateConfig()

        assert config.policy_mode is PolicyMode.REDACT
        assert config.audit_store_url == "memory://"
        assert config.retry_attempts == 5
        assert config.screened_roles == ["user"]

    def test_roles_from_comma_string(self):
        config = GateConfig(screened_roles=" user , tool ,")
        assert config.screened_roles == ["user", "tool"]

    def test_retry_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            GateConfig(retry_attempts=0)


class TestFromEnv:
    """Test GateConfig.from_env()."""

    def test_reads_prefixed_variables(self):
        env = {
            "PHIGUARD_POLICY_MODE": "block",
            "PHIGUARD_AUDIT_STORE_URL": "sqlite:///audit.db",
            "PHIGUARD_RETRY_ATTEMPTS": "7",
            "PHIGUARD_RETRY_INITIAL_WAIT": "0.5",
            "PHIGUARD_SCREENED_ROLES": "user,assistant",
            "UNRELATED": "ignored",
        }
        config = GateConfig.from_env(environ=env)

        assert config.policy_mode is PolicyMode.BLOCK
        assert config.audit_store_url == "sqlite:///audit.db"
        assert config.retry_attempts == 7
        assert config.retry_initial_wait == 0.5
        assert config.screened_roles == ["user", "assistant"]

    def test_empty_values_ignored(self):
        config = GateConfig.from_env(environ={"PHIGUARD_POLICY_MODE": ""})
        assert config.policy_mode is PolicyMode.REDACT

    def test_overrides_win(self):
        config = GateConfig.from_env(
            environ={"PHIGUARD_POLICY_MODE": "block"}, policy_mode="redact"
        )
        assert config.policy_mode is PolicyMode.REDACT

    def test_invalid_value_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid phiguard configuration"):
            GateConfig.from_env(environ={"PHIGUARD_POLICY_MODE": "shred"})

    def test_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv("PHIGUARD_RETRY_ATTEMPTS", "2")
        config = GateConfig.from_env(dotenv=False)
        assert config.retry_attempts == 2
