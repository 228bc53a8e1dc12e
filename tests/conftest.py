from __future__ import annotations

import json
from typing import Any, Dict, List
from urllib import parse as urlparse

import pytest

from social_link import api
from social_link.config import Settings
from social_link.provision import (
    ProvisionedApplication,
    ProvisionedConnector,
    ProvisionResult,
)
from social_link.store import VerificationStore
from social_link.web import create_app


class FakeLogto:
    """In-memory stand-in for the admin and default tenant REST APIs."""

    def __init__(self) -> None:
        self.applications: List[Dict[str, Any]] = []
        self.secrets: Dict[str, List[Dict[str, Any]]] = {}
        self.connectors: Dict[str, Dict[str, Any]] = {}
        self.users: List[Dict[str, Any]] = []
        self.account_center: Dict[str, Any] | None = None
        self.password = "test"
        self.social_state: str | None = None
        self.connector_lookup_status: int | None = None
        self.calls: List[Dict[str, Any]] = []

    def paths(self, method: str | None = None) -> List[str]:
        return [c["path"] for c in self.calls if method is None or c["method"] == method]

    def __call__(self, req, timeout):
        parsed = urlparse.urlsplit(req.full_url)
        path = parsed.path.lstrip("/")
        query = {k: v[0] for k, v in urlparse.parse_qs(parsed.query).items()}
        body: Any = None
        if req.data:
            content_type = req.get_header("Content-type", "")
            if "json" in content_type:
                body = json.loads(req.data)
            else:
                body = dict(urlparse.parse_qsl(req.data.decode()))
        method = req.get_method()
        self.calls.append(
            {
                "method": method,
                "path": path,
                "query": query,
                "body": body,
                "headers": dict(req.header_items()),
                "timeout": timeout,
            }
        )
        status, payload = self.route(method, path, query, body)
        return api.HttpResponse(
            status=status,
            content_type="application/json" if payload is not None else "",
            payload=json.dumps(payload) if payload is not None else "",
            reason="OK" if status < 400 else "Error",
            headers=[("Content-Type", "application/json")] if payload is not None else [],
            url=req.full_url,
        )

    def route(self, method, path, query, body):
        if (method, path) == ("POST", "oidc/token"):
            return 200, {"access_token": "machine-token", "expires_in": 3600, "token_type": "Bearer"}
        if (method, path) == ("GET", "api/applications"):
            return 200, [a for a in self.applications if a["name"] == query.get("search.name")]
        if (method, path) == ("POST", "api/applications"):
            app = {"id": f"app-{len(self.applications) + 1}", "name": body["name"]}
            self.applications.append(app)
            self.secrets[app["id"]] = [
                {"applicationId": app["id"], "name": "default", "value": f"{app['id']}-secret"}
            ]
            return 200, app
        if method == "GET" and path.startswith("api/applications/") and path.endswith("/secrets"):
            return 200, self.secrets.get(path.split("/")[2], [])
        if (method, path) == ("GET", "api/connectors/github"):
            if self.connector_lookup_status is not None:
                return self.connector_lookup_status, {"code": "auth.forbidden"}
            if "github" in self.connectors:
                return 200, self.connectors["github"]
            return 404, {"code": "entity.not_found"}
        if (method, path) == ("POST", "api/connectors"):
            connector = {"id": body["id"], "connectorId": body["connectorId"], "config": body["config"]}
            self.connectors[body["id"]] = connector
            return 200, connector
        if (method, path) == ("PATCH", "api/account-center"):
            self.account_center = body
            return 200, body
        if (method, path) == ("GET", "api/users"):
            return 200, [u for u in self.users if u["username"] == query.get("search.username")]
        if (method, path) == ("POST", "api/users"):
            user = {"id": f"user-{len(self.users) + 1}", "username": body["username"], "createdAt": 0}
            self.users.append(user)
            return 200, user
        if (method, path) == ("POST", "api/verifications/password"):
            if body["password"] != self.password:
                return 422, {"code": "session.invalid_credentials", "message": "Invalid credentials."}
            return 200, {"verificationRecordId": "pwd-record", "expiresAt": "2030-01-01T00:00:00.000Z"}
        if (method, path) == ("POST", "api/verifications/social"):
            self.social_state = body["state"]
            return 200, {
                "verificationRecordId": "social-record",
                "authorizationUri": "https://github.com/login/oauth/authorize?state=" + body["state"],
                "expiresAt": "2030-01-01T00:00:00.000Z",
            }
        if (method, path) == ("POST", "api/verifications/social/verify"):
            return 200, {"verificationRecordId": body["verificationRecordId"]}
        if (method, path) == ("POST", "api/my-account/identities"):
            return 204, None
        return 404, {"code": "route.not_found"}


@pytest.fixture
def settings():
    return Settings(
        github_client_id="gh-client",
        github_client_secret="gh-secret",
        default_tenant_secret="default-secret",
        admin_tenant_secret="admin-secret",
        secret_key="test-secret-key",
        timeout=5,
    )


@pytest.fixture
def logto(monkeypatch):
    fake = FakeLogto()
    monkeypatch.setattr(api, "_execute", fake)
    return fake


@pytest.fixture
def provisioned():
    return ProvisionResult(
        application=ProvisionedApplication(id="app-1", secret="app-1-secret"),
        connector=ProvisionedConnector(id="github", connector_id="github-universal"),
    )


@pytest.fixture
def store():
    return VerificationStore(ttl=600)


@pytest.fixture
def app(settings, provisioned, store):
    flask_app = create_app(settings, provisioned, store=store)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def signed_in(client):
    with client.session_transaction() as sess:
        sess["sid"] = "session-1"
        sess["access_token"] = "user-token"
        sess["user"] = {"sub": "user-1", "username": "test"}
    return client
