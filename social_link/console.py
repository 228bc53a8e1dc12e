"""Boxed console banners used to mark each step of the demo."""
from __future__ import annotations

from typing import Any

_STYLE = "\x1b[48;2;176;196;222m\x1b[38;2;25;25;112m\x1b[1m"
_RESET = "\x1b[0m"


def _color(text: str) -> str:
    return f"{_STYLE}{text}{_RESET}"


def banner(message: str) -> str:
    line = "=" * (len(message) + 4)
    return "\n".join(_color(part) for part in (line, f"  {message}  ", line))


def info(message: str, *data: Any) -> None:
    print(banner(message), *data)
