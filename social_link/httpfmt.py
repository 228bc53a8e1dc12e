"""Render HTTP requests and responses the way they look on the wire."""
from __future__ import annotations

import json
from typing import Any, Iterable, List, Tuple
from urllib import parse as urlparse
from urllib import request as urlrequest

import pygments
import pygments.formatters
import pygments.lexers


def format(obj: Any, color: bool = True) -> str:  # noqa: A001
    """Return ``obj`` as raw HTTP text, optionally highlighted for a terminal.

    ``obj`` is either a :class:`urllib.request.Request` or a response object
    exposing ``status``, ``reason``, ``headers``, ``content_type`` and
    ``payload`` (see :class:`social_link.api.HttpResponse`). Neither is
    modified.
    """
    if isinstance(obj, urlrequest.Request):
        text = _format_request(obj)
    else:
        text = _format_response(obj)
    return highlight_http(text) if color else text


def _format_request(req: urlrequest.Request) -> str:
    host = urlparse.urlsplit(req.full_url).netloc
    headers = format_headers(req.header_items(), host=host)
    content_type = req.get_header("Content-type", "") or ""
    body = format_body(req.data, content_type)
    return f"{req.get_method()} {req.selector} HTTP/1.1\n{headers}\n\n{body}\n"


def _format_response(response: Any) -> str:
    headers = format_headers(response.headers)
    body = format_body(response.payload, response.content_type)
    return f"HTTP/1.1 {response.status} {response.reason}\n{headers}\n\n{body}\n"


def format_headers(items: Iterable[Tuple[str, str]], host: str | None = None) -> str:
    entries: List[Tuple[str, str]] = [(name.lower(), value) for name, value in items]
    if host:
        entries.append(("host", host))
    return "\n".join(f"{name}: {value}" for name, value in sorted(entries, key=lambda e: e[0]))


def format_body(body: bytes | str | None, content_type: str) -> str:
    if body is None:
        return ""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    if "application/json" in content_type and text:
        try:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except ValueError:
            return text
    return text


def highlight_http(text: str) -> str:
    # The HTTP lexer hands the body to the JSON lexer based on content-type.
    lexer = pygments.lexers.get_lexer_by_name("http")
    formatter = pygments.formatters.TerminalFormatter()
    return pygments.highlight(text, lexer, formatter)
