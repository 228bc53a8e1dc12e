"""Bring a local Logto tenant into the state the demo needs.

The sequence is strictly linear: obtain a machine-to-machine token from the
admin tenant, then get-or-create the application, read its secret,
get-or-create the GitHub connector, enable the account center and
get-or-create the demo user. Lookups use natural keys (application name,
username, the fixed connector id ``github``).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

from .api import HttpResponse, HttpStatusError, MalformedResponseError, TenantApi
from .config import (
    DEFAULT_MACHINE_CLIENT_ID,
    DEMO_APPLICATION_NAME,
    DEMO_PASSWORD,
    DEMO_USERNAME,
    Settings,
)
from .console import info

GITHUB_CONNECTOR_ID = "github"
GITHUB_CONNECTOR_FACTORY_ID = "github-universal"


class ProvisioningError(RuntimeError):
    """A precondition of the provisioning sequence does not hold."""


@dataclass(frozen=True)
class ApplicationOptions:
    name: str
    redirect_uris: Sequence[str]
    post_logout_redirect_uris: Sequence[str]


@dataclass(frozen=True)
class UserOptions:
    username: str
    password: str


@dataclass(frozen=True)
class GithubAppOptions:
    client_id: str
    client_secret: str


@dataclass(frozen=True)
class ProvisionOptions:
    application: ApplicationOptions
    user: UserOptions
    github_app: GithubAppOptions


@dataclass(frozen=True)
class ProvisionedApplication:
    id: str
    secret: str


@dataclass(frozen=True)
class ProvisionedConnector:
    id: str
    connector_id: str


@dataclass(frozen=True)
class ProvisionResult:
    application: ProvisionedApplication
    connector: ProvisionedConnector

    def as_dict(self) -> Dict[str, Any]:
        return {
            "application": {"id": self.application.id, "secret": self.application.secret},
            "connector": {"id": self.connector.id, "connectorId": self.connector.connector_id},
        }


def _expect_list(response: HttpResponse) -> List[Dict[str, Any]]:
    data = response.json()
    if not isinstance(data, list):
        raise MalformedResponseError(f"Expected a JSON array from {response.url}")
    return data


def _expect_object(response: HttpResponse, *keys: str) -> Dict[str, Any]:
    data = response.json()
    if not isinstance(data, dict) or any(key not in data for key in keys):
        raise MalformedResponseError(
            f"Expected a JSON object with {', '.join(keys)} from {response.url}"
        )
    return data


def admin_tenant_api(settings: Settings) -> TenantApi:
    return TenantApi(settings.admin_tenant.endpoint, timeout=settings.timeout)


def create_default_tenant_api(settings: Settings, token: str) -> TenantApi:
    return TenantApi(
        settings.default_tenant.endpoint,
        {"Authorization": f"Bearer {token}"},
        timeout=settings.timeout,
    )


def get_token_of_machine_default(settings: Settings) -> Dict[str, Any]:
    info("Getting access token for default tenant")
    response = admin_tenant_api(settings).post(
        "oidc/token",
        form={
            "grant_type": "client_credentials",
            "client_id": DEFAULT_MACHINE_CLIENT_ID,
            "client_secret": settings.default_tenant_secret,
            "resource": settings.default_tenant.resource,
            "scope": "all",
        },
    )
    return _expect_object(response, "access_token")


def create_application_if_not_exists(
    api: TenantApi,
    name: str,
    redirect_uris: Sequence[str],
    post_logout_redirect_uris: Sequence[str],
) -> Dict[str, Any]:
    info("Create application if not exists")
    found = _expect_list(
        api.get("api/applications", params={"search.name": name, "mode.name": "exact"})
    )
    if found:
        return found[0]
    response = api.post(
        "api/applications",
        json_body={
            "type": "Traditional",
            "name": name,
            "oidcClientMetadata": {
                "redirectUris": list(redirect_uris),
                "postLogoutRedirectUris": list(post_logout_redirect_uris),
            },
        },
    )
    return _expect_object(response, "id")


def get_application_secret(api: TenantApi, application_id: str) -> Dict[str, Any]:
    info("Get application secrets")
    secrets = _expect_list(api.get(f"api/applications/{application_id}/secrets"))
    if not secrets or "value" not in secrets[0]:
        raise ProvisioningError("Application secret is required, but not found")
    return secrets[0]


def create_github_connector_if_not_exists(
    api: TenantApi, client_id: str, client_secret: str
) -> Dict[str, Any]:
    info("Create GitHub connector if not exists")
    response = api.get(f"api/connectors/{GITHUB_CONNECTOR_ID}", raise_for_status=False)
    if response.ok:
        return _expect_object(response, "id", "connectorId")
    if response.status != 404:
        # Only "not found" means the connector is missing.
        raise HttpStatusError(response)
    created = api.post(
        "api/connectors",
        json_body={
            "connectorId": GITHUB_CONNECTOR_FACTORY_ID,
            "config": {"clientId": client_id, "clientSecret": client_secret},
            "id": GITHUB_CONNECTOR_ID,
            "syncProfile": False,
        },
    )
    return _expect_object(created, "id", "connectorId")


def enable_account_center(api: TenantApi) -> None:
    info("Enable account center")
    api.patch(
        "api/account-center",
        json_body={"enabled": True, "fields": {"social": "Edit"}},
    )


def create_user_if_not_exists(api: TenantApi, username: str, password: str) -> Dict[str, Any]:
    info("Create user if not exists")
    found = _expect_list(
        api.get(
            "api/users",
            params={"search.username": username, "mode.username": "exact"},
        )
    )
    if found:
        return found[0]
    response = api.post("api/users", json_body={"username": username, "password": password})
    return _expect_object(response, "id")


def default_options(settings: Settings) -> ProvisionOptions:
    return ProvisionOptions(
        application=ApplicationOptions(
            name=DEMO_APPLICATION_NAME,
            redirect_uris=[settings.sign_in_callback_uri],
            post_logout_redirect_uris=[settings.post_logout_redirect_uri],
        ),
        user=UserOptions(username=DEMO_USERNAME, password=DEMO_PASSWORD),
        github_app=GithubAppOptions(
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
        ),
    )


def provision(settings: Settings, options: ProvisionOptions | None = None) -> ProvisionResult:
    """Run the provisioning sequence and return what the web app needs.

    Any failed call aborts the whole sequence; nothing is retried.
    """
    options = options or default_options(settings)
    token = get_token_of_machine_default(settings)
    api = create_default_tenant_api(settings, token["access_token"])
    application = create_application_if_not_exists(
        api,
        options.application.name,
        options.application.redirect_uris,
        options.application.post_logout_redirect_uris,
    )
    secret = get_application_secret(api, application["id"])
    connector = create_github_connector_if_not_exists(
        api, options.github_app.client_id, options.github_app.client_secret
    )
    enable_account_center(api)
    create_user_if_not_exists(api, options.user.username, options.user.password)
    return ProvisionResult(
        application=ProvisionedApplication(id=application["id"], secret=secret["value"]),
        connector=ProvisionedConnector(
            id=connector["id"], connector_id=connector["connectorId"]
        ),
    )
