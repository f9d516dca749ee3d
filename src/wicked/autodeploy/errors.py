"""Error types shared by the gateway and cluster adapters."""

from __future__ import annotations

import json
from typing import Any

import httpx


class ProvisioningError(Exception):
    """Base exception for anything that aborts a provisioning run."""

    def __init__(
        self, message: str, status_code: int | None = None, body: Any = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConfigurationError(ProvisioningError):
    """Required inputs are missing or invalid."""

    def __init__(self, problems: list[str]):
        super().__init__("Invalid configuration: " + "; ".join(problems))
        self.problems = list(problems)


class GatewayError(ProvisioningError):
    """API gateway request failed."""

    pass


class GatewayNotFoundError(GatewayError):
    """Gateway resource not found."""

    pass


class KubernetesError(ProvisioningError):
    """Kubernetes API request failed."""

    pass


class CredentialShapeError(ProvisioningError):
    """Subscription carries neither an OAuth client pair nor an API key."""

    pass


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body.

    Returns the parsed JSON document, ``{"message": <text>}`` when the body is
    not JSON, or None for an empty body.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {"message": response.text}
