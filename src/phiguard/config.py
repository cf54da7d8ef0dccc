"""
Configuration for phiguard.

Settings come from keyword arguments or, through GateConfig.from_env(),
from PHIGUARD_* environment variables (a local .env file is loaded first).
"""

import os
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ConfigurationError
from .schemas.base import PolicyMode

ENV_PREFIX = "PHIGUARD_"

_ENV_FIELDS = {
    "policy_mode": "POLICY_MODE",
    "audit_store_url": "AUDIT_STORE_URL",
    "retry_attempts": "RETRY_ATTEMPTS",
    "retry_initial_wait": "RETRY_INITIAL_WAIT",
    "retry_max_wait": "RETRY_MAX_WAIT",
    "screened_roles": "SCREENED_ROLES",
}


class GateConfig(BaseModel):
    """Policy gate settings."""

    policy_mode: PolicyMode = PolicyMode.REDACT
    audit_store_url: str = "memory://"
    retry_attempts: int = Field(5, ge=1, description="Append attempts before giving up")
    retry_initial_wait: float = Field(0.1, ge=0.0, description="First backoff, seconds")
    retry_max_wait: float = Field(2.0, ge=0.0, description="Backoff ceiling, seconds")
    screened_roles: List[str] = Field(default_factory=lambda: ["user"])

    @field_validator("screened_roles", mode="before")
    @classmethod
    def _split_roles(cls, value):
        if isinstance(value, str):
            return [role.strip() for role in value.split(",") if role.strip()]
        return value

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        dotenv: bool = True,
        **overrides,
    ) -> "GateConfig":
        """
        Build a config from PHIGUARD_* variables.

        Args:
            environ: Mapping to read instead of os.environ
            dotenv: Load a .env file into os.environ first
            **overrides: Explicit values that win over the environment

        Raises:
            ConfigurationError: if any value fails validation
        """
        if dotenv and environ is None:
            load_dotenv()
        env = os.environ if environ is None else environ

        values = {}
        for field_name, suffix in _ENV_FIELDS.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw is not None and raw != "":
                values[field_name] = raw
        values.update(overrides)

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid phiguard configuration: {e}") from e


__all__ = ["GateConfig", "ENV_PREFIX"]
