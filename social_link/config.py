"""Settings for the demo, loaded from ``.env`` and the process environment."""
from __future__ import annotations

import os
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping

from dotenv import dotenv_values

DEFAULT_ENV_FILE = ".env"
DEFAULT_ENDPOINT = "http://localhost:3001/"
DEFAULT_ADMIN_ENDPOINT = "http://localhost:3002/"
DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 30
DEFAULT_VERIFICATION_TTL = 600

ADMIN_RESOURCE = "https://admin.logto.app/api"
DEFAULT_RESOURCE = "https://default.logto.app/api"
ADMIN_MACHINE_CLIENT_ID = "m-admin"
DEFAULT_MACHINE_CLIENT_ID = "m-default"

DEMO_APPLICATION_NAME = "test"
DEMO_USERNAME = "test"
DEMO_PASSWORD = "test"

REQUIRED_VARIABLES = (
    "GITHUB_APP_CLIENT_ID",
    "GITHUB_APP_CLIENT_SECRET",
    "DEFAULT_TENANT_SECRET",
    "ADMIN_TENANT_SECRET",
)


@dataclass(frozen=True)
class TenantEndpoints:
    endpoint: str
    resource: str


@dataclass
class Settings:
    github_client_id: str
    github_client_secret: str
    default_tenant_secret: str
    admin_tenant_secret: str
    endpoint: str = DEFAULT_ENDPOINT
    admin_endpoint: str = DEFAULT_ADMIN_ENDPOINT
    base_url: str = DEFAULT_BASE_URL
    secret_key: str = ""
    verification_ttl: int = DEFAULT_VERIFICATION_TTL
    timeout: int = DEFAULT_TIMEOUT

    @property
    def default_tenant(self) -> TenantEndpoints:
        return TenantEndpoints(self.endpoint, DEFAULT_RESOURCE)

    @property
    def admin_tenant(self) -> TenantEndpoints:
        return TenantEndpoints(self.admin_endpoint, ADMIN_RESOURCE)

    @property
    def sign_in_callback_uri(self) -> str:
        return f"{self.base_url}/logto/sign-in-callback"

    @property
    def post_logout_redirect_uri(self) -> str:
        return f"{self.base_url}/"

    @property
    def social_callback_uri(self) -> str:
        return f"{self.base_url}/step3"


def _read_env(env_file: str, environ: Mapping[str, str] | None) -> Dict[str, str]:
    values: Dict[str, str] = {}
    path = Path(env_file)
    if path.exists():
        values.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    values.update(os.environ if environ is None else environ)
    return values


def _require(values: Mapping[str, str], name: str) -> str:
    value = values.get(name)
    if not value:
        raise SystemExit(f"{name} is required. Please set it in .env file")
    return value


def _integer(values: Mapping[str, str], name: str, default: int) -> int:
    value = values.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise SystemExit(f"{name} must be an integer") from None


def load_settings(
    env_file: str = DEFAULT_ENV_FILE,
    environ: Mapping[str, str] | None = None,
    timeout: int | None = None,
) -> Settings:
    """Build :class:`Settings`, exiting when a required variable is missing.

    Values from the process environment (or ``environ`` when given) override
    the ones found in ``env_file``.
    """
    values = _read_env(env_file, environ)
    required = {name: _require(values, name) for name in REQUIRED_VARIABLES}
    return Settings(
        github_client_id=required["GITHUB_APP_CLIENT_ID"],
        github_client_secret=required["GITHUB_APP_CLIENT_SECRET"],
        default_tenant_secret=required["DEFAULT_TENANT_SECRET"],
        admin_tenant_secret=required["ADMIN_TENANT_SECRET"],
        endpoint=_with_slash(values.get("LOGTO_ENDPOINT") or DEFAULT_ENDPOINT),
        admin_endpoint=_with_slash(
            values.get("LOGTO_ADMIN_ENDPOINT") or DEFAULT_ADMIN_ENDPOINT
        ),
        base_url=(values.get("APP_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        secret_key=values.get("FLASK_SECRET_KEY") or secrets.token_hex(32),
        verification_ttl=_integer(
            values, "VERIFICATION_TTL", DEFAULT_VERIFICATION_TTL
        ),
        timeout=timeout
        if timeout is not None
        else _integer(values, "HTTP_TIMEOUT", DEFAULT_TIMEOUT),
    )


def _with_slash(url: str) -> str:
    # Relative API paths are joined onto the endpoint.
    return url if url.endswith("/") else url + "/"
