"""Command line entry point for the social-link demo.

``provision`` brings the local Logto tenants into shape and prints the
resulting application and connector IDs. ``serve`` does the same and then
starts the web app that walks through linking a GitHub account.
"""
from __future__ import annotations

import argparse
import json
import sys
import textwrap

from .config import DEFAULT_ENV_FILE, Settings, load_settings
from .console import info
from .provision import provision
from .web import create_app


def _determine_env_file(argv: list[str]) -> str:
    env_file = DEFAULT_ENV_FILE
    for idx, arg in enumerate(argv):
        if arg in ("--env-file", "-e"):
            if idx + 1 < len(argv):
                env_file = argv[idx + 1]
        elif arg.startswith("--env-file="):
            env_file = arg.split("=", 1)[1]
    return env_file


def handle_provision(args: argparse.Namespace, settings: Settings) -> None:
    result = provision(settings)
    json.dump(result.as_dict(), sys.stdout, indent=2)
    print()


def handle_serve(args: argparse.Namespace, settings: Settings) -> None:
    if settings.base_url == "http://localhost:3000" and args.port != 3000:
        print(
            "Warning: APP_BASE_URL still points at port 3000; the redirect URIs "
            "registered with Logto will not match this server.",
            file=sys.stderr,
        )
    result = provision(settings)
    app = create_app(settings, result)
    info(f"Application started at {settings.base_url}. Open it in your browser.")
    app.run(host=args.host, port=args.port, use_reloader=False)


def build_parser(env_file: str) -> argparse.ArgumentParser:
    description = textwrap.dedent(
        """
        Provision a local Logto tenant and link a GitHub account to a
        password account through the Account API.

        Required variables (environment or env file):
          GITHUB_APP_CLIENT_ID, GITHUB_APP_CLIENT_SECRET,
          DEFAULT_TENANT_SECRET, ADMIN_TENANT_SECRET
        """
    ).strip()
    parser = argparse.ArgumentParser(
        prog="social-link",
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--env-file",
        "-e",
        default=env_file,
        help="Path to the .env file with the tenant secrets (default: %(default)s).",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="HTTP timeout in seconds for every Logto call (default: HTTP_TIMEOUT or 30).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    provision_cmd = subparsers.add_parser(
        "provision", help="Create the application, connector and user if missing."
    )
    provision_cmd.set_defaults(func=handle_provision)

    serve = subparsers.add_parser(
        "serve", help="Provision, then serve the linking wizard."
    )
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host/IP to bind the web server to (default: %(default)s).",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to bind the web server to (default: %(default)s).",
    )
    serve.set_defaults(func=handle_serve)

    return parser


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser(_determine_env_file(argv))
    args = parser.parse_args(argv)
    settings = load_settings(args.env_file, timeout=args.timeout)
    try:
        args.func(args, settings)
    except RuntimeError as exc:
        parser.exit(status=1, message=f"{exc}\n")
