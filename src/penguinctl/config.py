"""Global configuration models."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

import aiohttp
from pydantic import BaseModel, Field, field_validator, model_validator

from penguin import PenguinClient


ENV_ENDPOINT = "PENGUIN_ENDPOINT"
ENV_AUTH_TOKEN = "PENGUIN_AUTH_TOKEN"
ENV_JWT = "PENGUIN_JWT"


class ResourceKind(str, Enum):
    """Managed resource kinds."""

    virtual_machine = "virtual_machine"
    elastic_ip = "elastic_ip"
    bandwidth_package_selection = "bandwidth_package_selection"


class ApiConfig(BaseModel):
    """Penguin API configuration.

    Blank ``endpoint``, ``auth_token`` and ``jwt`` fall back to the
    ``PENGUIN_ENDPOINT``, ``PENGUIN_AUTH_TOKEN`` and ``PENGUIN_JWT``
    environment variables.
    """

    endpoint: str = Field(
        default="",
        description="Penguin service base URL, e.g. http://127.0.0.1:8080",
    )
    auth_token: str | None = Field(
        default=None,
        description="Legacy bearer token",
        repr=False,
    )
    jwt: str | None = Field(
        default=None,
        description="JWT enforcing provisioning limits",
        repr=False,
    )
    user_agent: str = Field(
        default="penguinctl/0.1.0",
        description="User-Agent header sent with every request",
    )
    timeout: float = Field(
        default=60.0,
        description="API request timeout in seconds",
        gt=0,
    )

    @model_validator(mode="after")
    def _apply_env_fallback(self) -> ApiConfig:
        self.endpoint = (self.endpoint or "").strip() or os.environ.get(
            ENV_ENDPOINT, ""
        ).strip()
        self.auth_token = (self.auth_token or "").strip() or os.environ.get(
            ENV_AUTH_TOKEN, ""
        ).strip()
        self.jwt = (self.jwt or "").strip() or os.environ.get(ENV_JWT, "").strip()
        if not self.endpoint:
            raise ValueError(
                f"Set api.endpoint or environment variable {ENV_ENDPOINT}"
            )
        return self

    def create_client(self) -> PenguinClient:
        """Build a client from this configuration.

        Returns:
            Unopened client; use it as an async context manager
        """
        return PenguinClient(
            self.endpoint,
            auth_token=self.auth_token,
            jwt=self.jwt,
            user_agent=self.user_agent,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )


class WaitConfig(BaseModel):
    """Wait operation configuration."""

    poll_interval: float = Field(
        default=10.0,
        description="Polling interval in seconds",
        gt=0,
    )
    timeout: float | None = Field(
        default=None,
        description="Upper bound for a single wait in seconds; unbounded when unset",
        gt=0,
    )


class StateConfig(BaseModel):
    """Local state store configuration."""

    directory: Path = Field(
        default=Path(".penguin"),
        description="Directory holding one JSON state document per resource",
    )

    @field_validator("directory", mode="before")
    @classmethod
    def _expand(cls, value: str | Path) -> Path:
        return Path(value).expanduser()
