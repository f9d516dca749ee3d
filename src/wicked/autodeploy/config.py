"""Provisioning settings.

Settings can be provided via:
1. Environment variables (APP_ID, API_ID, REDIRECT_URI, ...)
2. A YAML file passed with --config (supports ${VAR} and ${VAR:-default})
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wicked.autodeploy.errors import ConfigurationError
from wicked.autodeploy.gateway.models import ClientType

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/token")

# Pattern for ${VAR} and ${VAR:-default} interpolation
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(:-([^}]*))?\}")


def _resolve_env_str(s: str) -> str:
    """Resolve environment variable placeholders in a string."""
    def repl(m: re.Match[str]) -> str:
        val = os.getenv(m.group(1))
        if val is None or val == "":
            default = m.group(3)
            return default if default is not None else ""
        return val

    return _ENV_PATTERN.sub(repl, s)


def _resolve_env(value: Any) -> Any:
    """Recursively resolve environment variables in a data structure."""
    if isinstance(value, str):
        return _resolve_env_str(value)
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    return value


class ProvisionSettings(BaseSettings):
    """Desired state and connection settings for one provisioning run."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Desired state
    app_id: str = "app-id"
    api_id: str = "api-id"
    plan_id: str = "unlimited"
    client_type: str = ClientType.PUBLIC_SPA.value
    secret_name: str = "some-secret"
    namespace: str = "default"
    redirect_uri: str | None = Field(
        default=None,
        description="Pipe-delimited list of redirect URIs",
    )

    # Kubernetes
    ignore_k8s: bool = Field(
        default=False,
        description="Skip the Kubernetes secret entirely",
    )
    kubernetes_service_host: str | None = None
    kubernetes_service_port: str | None = None
    kubernetes_token_file: Path = DEFAULT_TOKEN_FILE

    # Gateway
    wicked_api_url: str = "http://portal-api:3001"
    user_agent: str = "auto-deploy"
    http_timeout: float = 30.0

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    @field_validator("redirect_uri", mode="before")
    @classmethod
    def join_redirect_uri_list(cls, v: Any) -> Any:
        """Allow a YAML list in place of the pipe-delimited string."""
        if isinstance(v, list):
            return "|".join(str(u) for u in v)
        return v

    @field_validator("ignore_k8s", mode="before")
    @classmethod
    def any_value_ignores_k8s(cls, v: Any) -> Any:
        """Any non-empty string switches the cluster off, even "false"."""
        if isinstance(v, str):
            return v.strip() != ""
        return v

    @property
    def redirect_uris(self) -> list[str]:
        """Redirect URIs in configured order."""
        if self.redirect_uri is None:
            return []
        return self.redirect_uri.split("|")

    @property
    def kubernetes_api(self) -> str:
        """Root of the Kubernetes core v1 API."""
        return (
            f"https://{self.kubernetes_service_host}"
            f":{self.kubernetes_service_port}/api/v1/"
        )

    def problems(self) -> list[str]:
        """List every missing required input."""
        found = []
        if not self.ignore_k8s:
            if not self.kubernetes_service_host:
                found.append("KUBERNETES_SERVICE_HOST is not set.")
            if not self.kubernetes_service_port:
                found.append("KUBERNETES_SERVICE_PORT is not set.")
            if not self.kubernetes_token_file.exists():
                found.append(f"File {self.kubernetes_token_file} does not exist.")
        if not self.redirect_uri:
            found.append("REDIRECT_URI is not set.")
        return found

    def read_token(self) -> str:
        """Read the service account token."""
        return self.kubernetes_token_file.read_text(encoding="utf-8").strip()

    def describe(self) -> list[str]:
        return [
            f"Using k8s Namespace: {self.namespace}",
            f"Using App ID:        {self.app_id}",
            f"Using API ID:        {self.api_id}",
            f"Using Plan ID:       {self.plan_id}",
            f"Using Client Type:   {self.client_type}",
            f"Using Secret Name:   {self.secret_name}",
            f"Using Redirect URIs: {', '.join(self.redirect_uris)}",
        ]

    @classmethod
    def from_yaml(cls, path: str | Path, **overrides: Any) -> "ProvisionSettings":
        """Load settings from a YAML file with env var interpolation.

        Fields missing from the file fall back to the environment.
        """
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        raw = yaml.safe_load(p.read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config file must be a YAML mapping: {path}")

        data = _resolve_env(raw)
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)


def load_settings(
    config_path: Path | None = None, **overrides: Any
) -> ProvisionSettings:
    """Build and validate settings.

    Raises:
        ConfigurationError: listing every problem found.
    """
    try:
        if config_path is not None:
            settings = ProvisionSettings.from_yaml(config_path, **overrides)
        else:
            settings = ProvisionSettings(
                **{k: v for k, v in overrides.items() if v is not None}
            )
    except ValidationError as e:
        raise ConfigurationError(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        ) from e
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError([str(e)]) from e

    problems = settings.problems()
    if problems:
        raise ConfigurationError(problems)

    logger.debug("Loaded settings for app %s", settings.app_id)
    return settings
