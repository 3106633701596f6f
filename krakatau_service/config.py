from __future__ import annotations

"""
Configuration loader for the Krakatau service.

- Reads environment variables (optionally from `.env`) via pydantic-settings.
- Exposes a cached `load_config()` accessor used by the app factory, the
  launcher and the CLI.

Environment variables:
    DECOMPILE_ENDPOINT       (str, default "/decompile")  : decompile route
    ASSEMBLE_ENDPOINT        (str, default "/assemble")   : assemble route
    HOST                     (str, default "0.0.0.0")     : bind address
    PORT                     (int, default 3000)          : bind port
    LOG_LEVEL                (str, default "INFO")
    LOG_FORMAT               (str, default "json")        : "json" or "console"

Authentication (each pair is optional; an incomplete pair disables that check):
    AUTH_USER / AUTH_PASSWORD            : HTTP Basic credentials
    AUTH_TOKEN_HEADER / AUTH_TOKEN_VALUE : required header name and value

Engine:
    WASM_PATH                (path, default "krak2.wasm")
    ENGINE_EAGER_LOAD        (bool, default False)  : load at startup instead of first use
    ENGINE_LOCK_TIMEOUT      (float, optional)      : max seconds to wait for the engine

Uploads:
    MAX_UPLOAD_BYTES         (int, default 10 MiB)
    ALLOW_RAW_BODY           (bool, default True)   : accept raw class bytes on decompile

CORS / metrics:
    CORS_ALLOW_ORIGINS       (csv|json list, default "*")
    METRICS_ENABLED          (bool, default True)

Notes
-----
- Lists accept comma-separated strings or JSON arrays.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list(val: Optional[str | List[str]], *, default: List[str]) -> List[str]:
    if val is None:
        return list(default)
    if isinstance(val, list):
        return val
    s = val.strip()
    if not s:
        return []
    if s.startswith("[") and s.endswith("]"):
        try:
            return [str(x) for x in json.loads(s)]
        except ValueError:
            pass
    return [x.strip() for x in s.split(",") if x.strip()]


class Settings(BaseSettings):
    # Routing
    decompile_endpoint: str = Field("/decompile", description="Path of the decompile route")
    assemble_endpoint: str = Field("/assemble", description="Path of the assemble route")

    # Bind
    host: str = Field("0.0.0.0", description="Bind address")
    port: int = Field(3000, ge=0, le=65535, description="Bind port")

    # Logging
    log_level: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_format: str = Field("json", description='"json" or "console"')

    # Authentication
    auth_user: Optional[str] = None
    auth_password: Optional[str] = None
    auth_token_header: Optional[str] = None
    auth_token_value: Optional[str] = None

    # Engine
    wasm_path: Path = Field(Path("krak2.wasm"), description="Compiled engine module")
    engine_eager_load: bool = False
    engine_lock_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds to wait for the engine before failing"
    )

    # Uploads
    max_upload_bytes: int = Field(10 * 1024 * 1024, gt=0)
    allow_raw_body: bool = True

    # CORS / metrics
    cors_allow_origins: List[str] | str = Field(default_factory=lambda: ["*"])
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", case_sensitive=False, extra="ignore"
    )

    @field_validator("decompile_endpoint", "assemble_endpoint")
    @classmethod
    def _check_path(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("/"):
            raise ValueError(f"endpoint must start with '/': {v!r}")
        return v

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _coerce_origins(cls, v):
        return _parse_list(v, default=["*"])

    @field_validator("auth_user", "auth_password", "auth_token_header", "auth_token_value", mode="before")
    @classmethod
    def _blank_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _distinct_endpoints(self) -> "Settings":
        if self.decompile_endpoint == self.assemble_endpoint:
            raise ValueError("DECOMPILE_ENDPOINT and ASSEMBLE_ENDPOINT must differ")
        return self


class Config(Settings):
    """Settings plus derived helpers used across the service."""

    @property
    def basic_auth_enabled(self) -> bool:
        return bool(self.auth_user and self.auth_password)

    @property
    def token_auth_enabled(self) -> bool:
        return bool(self.auth_token_header and self.auth_token_value)

    def to_cors_config(self):
        """Convert to the security.cors CORSConfig model."""
        from .security.cors import CORSConfig

        origins = list(self.cors_allow_origins) or ["*"]
        return CORSConfig(
            allow_origins=origins,
            allow_origin_regex=None,
            allow_methods=["POST", "GET", "OPTIONS"],
            allow_headers=["*"],
            expose_headers=["X-Request-Id"],
            allow_credentials=False,
            max_age=600,
        )

    def summary(self) -> dict:
        """Loggable view of the configuration (no secrets)."""
        return {
            "decompile_endpoint": self.decompile_endpoint,
            "assemble_endpoint": self.assemble_endpoint,
            "host": self.host,
            "port": self.port,
            "wasm_path": str(self.wasm_path),
            "basic_auth": self.basic_auth_enabled,
            "token_auth": self.token_auth_enabled,
            "eager_load": self.engine_eager_load,
        }


@lru_cache(maxsize=1)
def load_config() -> Config:
    """Cached configuration built from the environment."""
    return Config()  # type: ignore[call-arg]


__all__ = ["Settings", "Config", "load_config"]
