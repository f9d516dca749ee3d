import json
import logging

import httpx
import pytest
from typer.testing import CliRunner

from wicked.autodeploy import __version__
from wicked.autodeploy.cli import commands
from wicked.autodeploy.cli.main import app
from wicked.autodeploy.cluster import KubernetesClient
from wicked.autodeploy.gateway import WickedClient

runner = CliRunner()


class FakePortal:
    """Minimal stateful wicked portal API."""

    def __init__(
        self, applications=None, subscriptions=None, fail_on=None, machine_user=True
    ):
        self.applications = dict(applications or {})
        self.subscriptions = list(subscriptions or [])
        self.fail_on = fail_on
        self.machine_user = machine_user
        self.requests: list[tuple[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        if (method, path) == self.fail_on:
            return httpx.Response(500, json={"message": "portal exploded"})

        if path == "/ping":
            return httpx.Response(200, json={"message": "OK"})
        if path == "/users":
            if method == "GET":
                if not self.machine_user:
                    return httpx.Response(404, json={"message": "User not found"})
                return httpx.Response(200, json=[{"id": "machine"}])
            if method == "POST":
                self.machine_user = True
                return httpx.Response(201, json={"id": "machine"})
        if path == "/applications" and method == "POST":
            body = json.loads(request.content)
            self.applications[body["id"]] = body
            return httpx.Response(201, json=body)
        if path.startswith("/applications/"):
            parts = path.split("/")[2:]
            app_id = parts[0]
            if len(parts) == 1:
                if app_id not in self.applications:
                    return httpx.Response(404, json={"message": "Not found"})
                if method == "PATCH":
                    self.applications[app_id].update(json.loads(request.content))
                return httpx.Response(200, json=self.applications[app_id])
            if method == "GET":
                return httpx.Response(200, json=self.subscriptions)
            if method == "POST":
                body = json.loads(request.content)
                created = {**body, "clientId": "cid", "clientSecret": "cs"}
                self.subscriptions.append(created)
                return httpx.Response(201, json=created)
            if method == "DELETE":
                self.subscriptions = [s for s in self.subscriptions if s["api"] != parts[2]]
                return httpx.Response(204)
        return httpx.Response(404, json={"message": "Not found"})

    @property
    def writes(self):
        return [r for r in self.requests if r[0] != "GET" and r[1] not in ("/users",)]


class FakeApiServer:
    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})
        self.requests: list[tuple[str, str]] = []
        self.posted = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, path))
        name = path.rsplit("/", 1)[-1]
        if method == "GET":
            if name in self.secrets:
                return httpx.Response(200, json=self.secrets[name])
            return httpx.Response(404, json={"reason": "NotFound"})
        if method == "DELETE":
            self.secrets.pop(name)
            return httpx.Response(200, json={"status": "Success"})
        if method == "POST":
            body = json.loads(request.content)
            self.posted.append(body)
            self.secrets[body["metadata"]["name"]] = body
            return httpx.Response(201, json=body)
        return httpx.Response(405)


@pytest.fixture
def portal(monkeypatch):
    portal = FakePortal()
    _install(monkeypatch, portal)
    return portal


def _install(monkeypatch, portal, api_server=None):
    monkeypatch.setattr(
        commands,
        "WickedClient",
        lambda settings: WickedClient(settings, transport=httpx.MockTransport(portal)),
    )
    if api_server is not None:
        monkeypatch.setattr(
            commands,
            "KubernetesClient",
            lambda api_root, token, timeout: KubernetesClient(
                api_root, token, timeout=timeout, transport=httpx.MockTransport(api_server)
            ),
        )


@pytest.fixture
def cluster_env(monkeypatch, token_file):
    monkeypatch.setenv("KUBERNETES_SERVICE_HOST", "10.0.0.1")
    monkeypatch.setenv("KUBERNETES_SERVICE_PORT", "6443")
    monkeypatch.setenv("KUBERNETES_TOKEN_FILE", str(token_file))
    monkeypatch.setenv("REDIRECT_URI", "https://a|https://b")


def test_missing_configuration_exits_before_any_request(monkeypatch, tmp_path):
    def no_network(settings):
        raise AssertionError("network must not be touched")

    monkeypatch.setattr(commands, "WickedClient", no_network)
    monkeypatch.setenv("KUBERNETES_TOKEN_FILE", str(tmp_path / "missing"))

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 1


def test_fresh_install_end_to_end(monkeypatch, cluster_env):
    portal = FakePortal()
    api_server = FakeApiServer()
    _install(monkeypatch, portal, api_server)
    monkeypatch.setenv("APP_ID", "app-id")
    monkeypatch.setenv("API_ID", "api-id")
    monkeypatch.setenv("CLIENT_TYPE", "public_spa")
    monkeypatch.setenv("PLAN_ID", "unlimited")

    result = runner.invoke(app, [])

    assert result.exit_code == 0, result.output
    assert portal.writes == [
        ("POST", "/applications"),
        ("POST", "/applications/app-id/subscriptions"),
    ]
    assert portal.applications["app-id"] == {
        "id": "app-id",
        "name": "app-id (auto generated)",
        "clientType": "public_spa",
        "redirectUris": ["https://a", "https://b"],
    }
    assert api_server.requests == [
        ("GET", "/api/v1/namespaces/default/secrets/some-secret"),
        ("POST", "/api/v1/namespaces/default/secrets"),
    ]
    assert api_server.posted == [
        {
            "metadata": {"name": "some-secret"},
            "stringData": {"client_id": "cid", "client_secret": "cs"},
        }
    ]
    assert "Application: created" in result.output


def test_second_run_only_replaces_secret(monkeypatch, cluster_env):
    portal = FakePortal(
        applications={
            "app-id": {
                "id": "app-id",
                "clientType": "public_spa",
                "redirectUris": ["https://a", "https://b"],
            }
        },
        subscriptions=[
            {"application": "app-id", "api": "api-id", "plan": "unlimited", "apikey": "k"}
        ],
    )
    api_server = FakeApiServer(secrets={"some-secret": {"metadata": {"name": "some-secret"}}})
    _install(monkeypatch, portal, api_server)

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 0, result.output
    assert portal.writes == []
    assert [r[0] for r in api_server.requests] == ["GET", "DELETE", "POST"]
    assert api_server.posted[0]["stringData"] == {"api_key": "k"}


def test_ignore_k8s_skips_secret(monkeypatch, portal):
    monkeypatch.setenv("IGNORE_K8S", "true")
    monkeypatch.setenv("REDIRECT_URI", "https://a")

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 0, result.output
    assert "Secret: skipped" in result.output


def test_free_form_client_type_end_to_end(monkeypatch, portal):
    monkeypatch.setenv("CLIENT_TYPE", "public-spa")
    monkeypatch.setenv("IGNORE_K8S", "true")
    monkeypatch.setenv("REDIRECT_URI", "https://a|https://b")

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 0, result.output
    assert portal.applications["app-id"]["clientType"] == "public-spa"
    assert portal.applications["app-id"]["redirectUris"] == ["https://a", "https://b"]


def test_fresh_portal_creates_machine_user(monkeypatch):
    portal = FakePortal(machine_user=False)
    _install(monkeypatch, portal)
    monkeypatch.setenv("IGNORE_K8S", "skip")
    monkeypatch.setenv("REDIRECT_URI", "https://a")

    result = runner.invoke(app, ["run"])

    assert result.exit_code == 0, result.output
    assert portal.requests[1:3] == [("GET", "/users"), ("POST", "/users")]
    assert "Secret: skipped" in result.output


def test_gateway_failure_exits_1_and_reports_body(monkeypatch, caplog):
    portal = FakePortal(fail_on=("GET", "/applications/app-id/subscriptions"))
    _install(monkeypatch, portal)
    monkeypatch.setenv("IGNORE_K8S", "true")
    monkeypatch.setenv("REDIRECT_URI", "https://a")

    with caplog.at_level(logging.ERROR):
        result = runner.invoke(app, ["run"])

    assert result.exit_code == 1
    messages = [r.getMessage() for r in caplog.records]
    assert "Initialization failed." in messages
    assert "Status code: 500" in messages
    assert json.dumps({"message": "portal exploded"}) in messages


def test_config_file_option(monkeypatch, portal, tmp_path):
    config = tmp_path / "autodeploy.yaml"
    config.write_text("app_id: from-file\nredirect_uri: https://a\nignore_k8s: true\n")

    result = runner.invoke(app, ["run", "--config", str(config)])

    assert result.exit_code == 0, result.output
    assert ("POST", "/applications") in portal.requests
    assert "from-file" in portal.applications


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__
