"""Minimal JSON client for a Logto tenant's REST API.

Every request and response is echoed to the console through
:func:`social_link.httpfmt.format`. Each call is attempted exactly once with a
single bounded timeout. Failures surface as one of three error kinds:
:class:`NetworkError`, :class:`HttpStatusError` or
:class:`MalformedResponseError`.
"""
from __future__ import annotations

import http.client
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple
from urllib import error as urlerror
from urllib import parse as urlparse
from urllib import request as urlrequest

from . import httpfmt
from .config import DEFAULT_TIMEOUT


class ApiError(RuntimeError):
    """Base class for failures while talking to the tenant."""


class NetworkError(ApiError):
    """The request never produced an HTTP response."""


class MalformedResponseError(ApiError):
    """The response body is not the JSON document the caller expected."""


class HttpStatusError(ApiError):
    def __init__(self, response: "HttpResponse") -> None:
        super().__init__(
            f"HTTP {response.status} error while calling {response.url}: {response.payload}"
        )
        self.response = response


@dataclass
class HttpResponse:
    status: int
    content_type: str
    payload: str
    reason: str = ""
    headers: List[Tuple[str, str]] = field(default_factory=list)
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        try:
            return json.loads(self.payload)
        except ValueError as exc:
            raise MalformedResponseError(
                f"Expected JSON from {self.url}, got: {self.payload[:200]!r}"
            ) from exc


def _encode_query(params: Mapping[str, Any]) -> str:
    safe_params = {k: v for k, v in params.items() if v is not None}
    return urlparse.urlencode(safe_params, quote_via=urlparse.quote)


def _to_response(url: str, status: int, reason: str, headers: Any, body: bytes) -> HttpResponse:
    return HttpResponse(
        status=status,
        content_type=headers.get("Content-Type", "") if headers is not None else "",
        payload=body.decode("utf-8", errors="replace"),
        reason=reason or "",
        headers=list(headers.items()) if headers is not None else [],
        url=url,
    )


def _execute(req: urlrequest.Request, timeout: float) -> HttpResponse:
    try:
        with urlrequest.urlopen(req, timeout=timeout) as resp:
            return _to_response(
                req.full_url, resp.status, resp.reason, resp.headers, resp.read()
            )
    except urlerror.HTTPError as exc:
        return _to_response(req.full_url, exc.code, exc.reason, exc.headers, exc.read())
    except (urlerror.URLError, http.client.HTTPException, TimeoutError, ConnectionError) as exc:
        reason = getattr(exc, "reason", exc)
        raise NetworkError(f"Could not reach {req.full_url}: {reason}") from exc


class TenantApi:
    """Requests relative to a tenant endpoint with a fixed set of headers."""

    def __init__(
        self,
        endpoint: str,
        headers: Mapping[str, str] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        verbose: bool = True,
    ) -> None:
        self.endpoint = endpoint
        self.headers: Dict[str, str] = dict(headers or {})
        self.timeout = timeout
        self.verbose = verbose

    def extend(self, headers: Mapping[str, str]) -> "TenantApi":
        return TenantApi(
            self.endpoint,
            {**self.headers, **headers},
            timeout=self.timeout,
            verbose=self.verbose,
        )

    def build_request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        form: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> urlrequest.Request:
        url = urlparse.urljoin(self.endpoint, path)
        if params:
            url = f"{url}?{_encode_query(params)}"
        all_headers = {**self.headers, **(headers or {})}
        data = None
        if json_body is not None:
            data = json.dumps(json_body).encode("utf-8")
            all_headers["Content-Type"] = "application/json"
        elif form is not None:
            data = _encode_query(form).encode("utf-8")
            all_headers["Content-Type"] = "application/x-www-form-urlencoded"
        all_headers.setdefault("Accept", "application/json")
        return urlrequest.Request(url, data=data, headers=all_headers, method=method)

    def request(
        self,
        method: str,
        path: str,
        *,
        raise_for_status: bool = True,
        **kwargs: Any,
    ) -> HttpResponse:
        req = self.build_request(method, path, **kwargs)
        if self.verbose:
            print(httpfmt.format(req))
        response = _execute(req, self.timeout)
        if self.verbose:
            print(httpfmt.format(response))
        if raise_for_status and not response.ok:
            raise HttpStatusError(response)
        return response

    def get(self, path: str, **kwargs: Any) -> HttpResponse:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> HttpResponse:
        return self.request("POST", path, **kwargs)

    def patch(self, path: str, **kwargs: Any) -> HttpResponse:
        return self.request("PATCH", path, **kwargs)
