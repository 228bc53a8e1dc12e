"""Flask app walking a signed-in user through linking a GitHub account.

Step 1 verifies the user's password, step 2 starts a social verification and
hands out the GitHub authorization URL, step 3 receives the OAuth callback,
verifies it and links the new identity through the Account API.
"""
from __future__ import annotations

import functools
import json
import secrets
import textwrap
import time
from datetime import timedelta
from html import escape
from typing import Any, Callable
from urllib import parse as urlparse

from authlib.integrations.base_client import OAuthError
from authlib.integrations.flask_client import OAuth
from flask import Flask, redirect, request, session, url_for

from .api import ApiError, MalformedResponseError, TenantApi
from .config import Settings
from .console import info
from .provision import ProvisionResult, create_default_tenant_api
from .store import VerificationKind, VerificationStore

# The `identities` scope is required to link social connections.
SCOPES = "openid profile offline_access identities"
# Refresh the access token this many seconds before it expires.
TOKEN_LEEWAY = 60

MISSING_PASSWORD_RECORD = (
    "<p>The password verification record ID is missing. "
    'Please go back to the <a href="/step1">step 1</a>.</p>'
)
MISSING_SOCIAL_RECORD = (
    "<p>The social verification record ID is missing. "
    'Please go back to the <a href="/step2">step 2</a>.</p>'
)
STATE_MISMATCH = (
    "<p>The authorization state does not match. "
    'Please go back to the <a href="/step2">step 2</a>.</p>'
)

PASSWORD_FORM = textwrap.dedent(
    """
    <h1>Step 1: Authorize with Logto</h1>
    <form method="post" action="/step1">
      <p>Enter your Logto password to authorize the operation.</p>
      <p>For security reasons, the Logto Account API requires another layer of authorization for the operations that involve identifiers and other sensitive information.</p>
      <div>
        <label for="password">Password:</label>
        <input type="password" id="password" name="password" required>
      </div>
      <div>
        <button type="submit">Authorize</button>
      </div>
    </form>
    """
).strip()

HOME_SIGNED_IN = textwrap.dedent(
    """
    <h1>Hello Logto</h1>
    <h2>Menu</h2>
    <ul>
      <li><a href="/logto/sign-out">Sign Out</a></li>
      <li><a href="/step1">Start To Link GitHub Account</a></li>
    </ul>
    <h2>Profile</h2>
    <pre>{profile}</pre>
    """
).strip()


def _pretty(data: Any) -> str:
    return escape(json.dumps(data, indent=2, ensure_ascii=False), quote=False)


def create_app(
    settings: Settings,
    provisioned: ProvisionResult,
    store: VerificationStore | None = None,
) -> Flask:
    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(days=14)
    store = store or VerificationStore(ttl=settings.verification_ttl)
    app.extensions["verification_store"] = store

    oauth = OAuth(app)
    oauth.register(
        "logto",
        client_id=provisioned.application.id,
        client_secret=provisioned.application.secret,
        server_metadata_url=urlparse.urljoin(
            settings.endpoint, "oidc/.well-known/openid-configuration"
        ),
        client_kwargs={"scope": SCOPES},
    )

    def login_required(view: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(view)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not session.get("access_token") or not session.get("sid"):
                return redirect(url_for("sign_in"))
            return view(*args, **kwargs)

        return wrapper

    def remember_token(token: Any) -> None:
        session["access_token"] = token["access_token"]
        session["refresh_token"] = token.get("refresh_token") or session.get(
            "refresh_token"
        )
        session["expires_at"] = token.get("expires_at")

    def access_token() -> str:
        expires_at = session.get("expires_at")
        refresh_token = session.get("refresh_token")
        if expires_at and refresh_token and expires_at - TOKEN_LEEWAY <= time.time():
            app.logger.info("Refreshing the user access token")
            remember_token(
                oauth.logto.fetch_access_token(
                    grant_type="refresh_token", refresh_token=refresh_token
                )
            )
        return session["access_token"]

    def user_api() -> TenantApi:
        return create_default_tenant_api(settings, access_token())

    @app.before_request
    def purge_expired_records() -> None:
        store.purge_expired()

    @app.errorhandler(ApiError)
    def api_error(exc: ApiError) -> Any:
        app.logger.warning("Account API call failed: %s", exc)
        body = (
            "<h1>Something went wrong</h1>"
            f"<pre>{escape(str(exc), quote=False)}</pre>"
            '<p><a href="/">Go back to the home page</a></p>'
        )
        return body, 502

    @app.errorhandler(OAuthError)
    def oauth_error(exc: OAuthError) -> Any:
        app.logger.warning("Token request failed: %s", exc)
        sid = session.get("sid")
        if sid:
            store.clear(sid)
        session.clear()
        return redirect("/")

    @app.get("/logto/sign-in")
    def sign_in() -> Any:
        return oauth.logto.authorize_redirect(settings.sign_in_callback_uri)

    @app.get("/logto/sign-in-callback")
    def sign_in_callback() -> Any:
        token = oauth.logto.authorize_access_token()
        profile = dict(token.get("userinfo") or {})
        profile.update(oauth.logto.userinfo(token=token))
        previous = session.get("sid")
        if previous:
            store.clear(previous)
        session.clear()
        session.permanent = True
        session["sid"] = secrets.token_urlsafe(32)
        remember_token(token)
        session["user"] = profile
        return redirect("/")

    @app.get("/logto/sign-out")
    def sign_out() -> Any:
        sid = session.get("sid")
        if sid:
            store.clear(sid)
        session.clear()
        metadata = oauth.logto.load_server_metadata()
        end_session = metadata.get("end_session_endpoint")
        if not end_session:
            return redirect("/")
        query = urlparse.urlencode(
            {
                "client_id": provisioned.application.id,
                "post_logout_redirect_uri": settings.post_logout_redirect_uri,
            }
        )
        return redirect(f"{end_session}?{query}")

    @app.get("/")
    def home() -> str:
        if not session.get("access_token"):
            return '<h1>Hello Logto</h1><div><a href="/logto/sign-in">Sign In</a></div>'
        return HOME_SIGNED_IN.format(profile=_pretty(session.get("user", {})))

    @app.get("/step1")
    @login_required
    def step1_form() -> str:
        return PASSWORD_FORM

    @app.post("/step1")
    @login_required
    def step1_submit() -> str:
        info("Get verification record ID by password")
        response = user_api().post(
            "api/verifications/password",
            json_body={"password": request.form.get("password", "")},
            raise_for_status=False,
        )
        if not response.ok:
            app.logger.info("Password verification rejected (%s)", response.status)
            return (
                "<h1>Step 1: Authorize with Logto</h1>"
                "<p>Failed</p>"
                f"<pre>{escape(response.payload, quote=False)}</pre>"
                '<p><a href="/step1">Try again</a></p>'
            )
        data = response.json()
        if not isinstance(data, dict) or not data.get("verificationRecordId"):
            raise MalformedResponseError("Password verification returned no record ID")
        store.set(session["sid"], VerificationKind.PASSWORD, data["verificationRecordId"])
        return (
            "<h1>Step 1: Authorize with Logto</h1>"
            "<p>Success</p>"
            '<p><a href="/step2">Continue to GitHub Authorization</a></p>'
            f"<pre>{_pretty(data)}</pre>"
        )

    @app.get("/step2")
    @login_required
    def step2() -> str:
        sid = session["sid"]
        if not store.has(sid, VerificationKind.PASSWORD):
            return MISSING_PASSWORD_RECORD

        info("Get social verification record ID")
        state = secrets.token_urlsafe(32)
        store.set_state(sid, state)
        data = user_api().post(
            "api/verifications/social",
            json_body={
                "connectorId": provisioned.connector.id,
                "redirectUri": settings.social_callback_uri,
                "state": state,
            },
        ).json()
        if not isinstance(data, dict) or not data.get("verificationRecordId"):
            raise MalformedResponseError("Social verification returned no record ID")
        store.set(sid, VerificationKind.SOCIAL, data["verificationRecordId"])
        authorization_uri = escape(data.get("authorizationUri", ""), quote=True)
        return (
            "<h1>Step 2: Authorize with GitHub</h1>"
            "<p>Open the following link to authorize the application to access your GitHub account.</p>"
            f"<pre>{_pretty(data)}</pre>"
            f'<a href="{authorization_uri}">Open GitHub Authorization Page</a>'
        )

    @app.get("/step3")
    @login_required
    def step3() -> str:
        sid = session["sid"]
        password_record = store.get(sid, VerificationKind.PASSWORD)
        if password_record is None:
            return MISSING_PASSWORD_RECORD
        social_record = store.get(sid, VerificationKind.SOCIAL)
        if social_record is None:
            return MISSING_SOCIAL_RECORD

        returned_state = request.args.get("state", "")
        expected_state = store.pop_state(sid)
        if expected_state is None or not secrets.compare_digest(
            expected_state.encode(), returned_state.encode()
        ):
            return STATE_MISMATCH

        info("User has authorized the application to access the GitHub account")
        api = user_api()

        info("Verify social connection")
        api.post(
            "api/verifications/social/verify",
            json_body={
                "connectorData": {"code": request.args.get("code"), "state": returned_state},
                "verificationRecordId": social_record,
            },
        )

        info("Link the social connection")
        api.post(
            "api/my-account/identities",
            headers={"logto-verification-id": password_record},
            json_body={"newIdentifierVerificationRecordId": social_record},
        )
        store.clear(sid)

        info("Link GitHub Account Success")
        print("You can stop the server now.")
        return (
            "<h1>Step 3: Link GitHub Account</h1>"
            "<p>Success</p>"
            '<p><a href="/">Go back to the home page</a></p>'
        )

    return app
