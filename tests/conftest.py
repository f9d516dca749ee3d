"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from wicked.autodeploy.config import ProvisionSettings
from wicked.autodeploy.gateway.models import (
    Application,
    ApplicationPatch,
    Subscription,
    SubscriptionRequest,
)

_ENV_VARS = [
    "APP_ID",
    "API_ID",
    "PLAN_ID",
    "CLIENT_TYPE",
    "SECRET_NAME",
    "NAMESPACE",
    "REDIRECT_URI",
    "IGNORE_K8S",
    "KUBERNETES_SERVICE_HOST",
    "KUBERNETES_SERVICE_PORT",
    "KUBERNETES_TOKEN_FILE",
    "WICKED_API_URL",
    "USER_AGENT",
    "HTTP_TIMEOUT",
    "LOG_LEVEL",
    "LOG_JSON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from the host environment and any .env file."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def token_file(tmp_path) -> Path:
    path = tmp_path / "token"
    path.write_text("sa-token\n")
    return path


@pytest.fixture
def settings(token_file) -> ProvisionSettings:
    return ProvisionSettings(
        app_id="app-id",
        api_id="api-id",
        plan_id="unlimited",
        client_type="public_spa",
        secret_name="some-secret",
        namespace="default",
        redirect_uri="https://a|https://b",
        kubernetes_service_host="10.0.0.1",
        kubernetes_service_port="443",
        kubernetes_token_file=token_file,
        wicked_api_url="http://portal-api:3001",
    )


class FakeGateway:
    """Records every call; serves state from plain attributes."""

    def __init__(
        self,
        application: Application | None = None,
        subscriptions: list[Subscription] | None = None,
        issued: dict[str, Any] | None = None,
    ):
        self.application = application
        self.subscriptions = list(subscriptions or [])
        self.issued = issued or {"clientId": "cid", "clientSecret": "csecret"}
        self.calls: list[tuple] = []

    @property
    def writes(self) -> list[tuple]:
        return [c for c in self.calls if not c[0].startswith("get_")]

    async def get_application(self, app_id: str) -> Application | None:
        self.calls.append(("get_application", app_id))
        return self.application

    async def create_application(self, application: Application) -> None:
        self.calls.append(("create_application", application))
        self.application = application

    async def patch_application(self, app_id: str, patch: ApplicationPatch) -> None:
        self.calls.append(("patch_application", app_id, patch))

    async def get_subscriptions(self, app_id: str) -> list[Subscription]:
        self.calls.append(("get_subscriptions", app_id))
        return list(self.subscriptions)

    async def create_subscription(
        self, app_id: str, request: SubscriptionRequest
    ) -> Subscription:
        self.calls.append(("create_subscription", app_id, request))
        created = Subscription(
            application=request.application,
            api=request.api,
            plan=request.plan,
            **self.issued,
        )
        self.subscriptions.append(created)
        return created

    async def delete_subscription(self, app_id: str, api_id: str) -> None:
        self.calls.append(("delete_subscription", app_id, api_id))
        self.subscriptions = [s for s in self.subscriptions if s.api != api_id]


class FakeCluster:
    """In-memory secret store recording every call."""

    def __init__(self, existing: dict[str, Any] | None = None):
        self.objects: dict[str, Any] = dict(existing or {})
        self.calls: list[tuple] = []

    async def get(self, path: str) -> Any:
        self.calls.append(("GET", path))
        return self.objects.get(path)

    async def post(self, path: str, body: Any) -> Any:
        self.calls.append(("POST", path, body))
        self.objects[f"{path}/{body['metadata']['name']}"] = body
        return body

    async def delete(self, path: str) -> Any:
        self.calls.append(("DELETE", path))
        return self.objects.pop(path, None)


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_cluster() -> FakeCluster:
    return FakeCluster()
