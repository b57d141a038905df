#!/usr/bin/env python3
"""
TokenGate: username/password auth with access and refresh tokens.

Usage:
  python main.py serve
  python main.py register alice
  python main.py login alice
  python main.py protected
  python main.py logout
  python main.py sweep

Client commands talk to a running server (--url, default http://localhost:3000)
and keep the token pair in a small JSON file between invocations
(--token-file, default ~/.tokengate.json). `protected` refreshes the access
token and retries once when the server answers 403, and saves the new token.

Server commands (serve, sweep) read their configuration from the environment
or .env -- see core/config.py.
"""

import argparse
import getpass
import json
import os
import sys
from pathlib import Path
from typing import Optional

import requests

from client.session import ApiError, AuthClient, SessionExpiredError

_DEFAULT_TOKEN_FILE = Path.home() / ".tokengate.json"


def _load_tokens(path: Path) -> dict:
    """Read the saved token pair. Missing or unreadable files mean "logged out"."""
    file_path = path.expanduser().resolve()
    if not file_path.is_file():
        return {}
    try:
        data = json.loads(file_path.read_text())
    except (OSError, ValueError) as e:
        print(f"  [!] Could not read token file '{path}': {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _save_tokens(path: Path, client: AuthClient) -> None:
    """Persist the client's tokens, or remove the file once both are gone."""
    file_path = path.expanduser()
    if not client.logged_in:
        file_path.unlink(missing_ok=True)
        return
    if file_path.exists():
        # Tighten a pre-existing file before the tokens go in
        file_path.chmod(0o600)
    fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w") as fh:
        fh.write(json.dumps({"accessToken": client.access_token, "refreshToken": client.refresh_token}))


def _password(args: argparse.Namespace) -> str:
    return args.password if args.password is not None else getpass.getpass("Password: ")


# ---------------------------------------------------------------------------
# Server-side commands
# ---------------------------------------------------------------------------


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from core.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _sweep(args: argparse.Namespace) -> int:
    """One-off expiry sweep, for cron jobs or after a long downtime."""
    from auth.store import RefreshTokenStore, create_store_engine
    from core.config import get_settings

    engine = create_store_engine(get_settings().database_url)
    try:
        removed = RefreshTokenStore(engine).sweep_expired()
    finally:
        engine.dispose()
    print(f"  Removed {removed} expired refresh token(s).")
    return 0


# ---------------------------------------------------------------------------
# Client commands
# ---------------------------------------------------------------------------


def _run_client(args: argparse.Namespace) -> int:
    saved = _load_tokens(args.token_file)
    client = AuthClient(
        args.url,
        access_token=saved.get("accessToken"),
        refresh_token=saved.get("refreshToken"),
    )

    try:
        if args.command == "register":
            client.register(args.username, _password(args))
            print(f"  Registered '{args.username}'. Run `login {args.username}` next.")

        elif args.command == "login":
            client.login(args.username, _password(args))
            print(f"  Logged in as '{args.username}'.")

        elif args.command == "protected":
            if not client.logged_in:
                print("  [!] Not logged in.")
                return 1
            print(json.dumps(client.fetch_protected(), indent=2))

        elif args.command == "logout":
            if client.refresh_token:
                client.logout()
            client.clear()
            print("  Logged out.")

    except SessionExpiredError as e:
        print(f"  [!] {e.message}")
        return 1
    except ApiError as e:
        print(f"  [!] {e.message} (HTTP {e.status_code})")
        return 1
    except requests.RequestException as e:
        print(f"  [!] Could not reach {args.url}: {e}")
        return 1
    finally:
        _save_tokens(args.token_file, client)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="tokengate",
        description="Username/password auth with short-lived access tokens and revocable refresh tokens.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --port 3000
  python main.py register alice --password pw1
  python main.py login alice
  python main.py protected
  python main.py logout
  JWT_SECRET=... JWT_REFRESH_SECRET=... python main.py serve
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST setting)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting, 3000)")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")

    sub.add_parser("sweep", help="Delete expired refresh tokens now and exit")

    client_opts = argparse.ArgumentParser(add_help=False)
    client_opts.add_argument("--url", default="http://localhost:3000", help="Server base URL")
    client_opts.add_argument(
        "--token-file",
        type=Path,
        default=_DEFAULT_TOKEN_FILE,
        metavar="PATH",
        help="Where the token pair is kept between commands (default: ~/.tokengate.json)",
    )

    for name, help_text in (("register", "Create an account"), ("login", "Log in and save tokens")):
        cmd = sub.add_parser(name, parents=[client_opts], help=help_text)
        cmd.add_argument("username")
        cmd.add_argument("--password", default=None, help="Password (prompted if omitted)")

    sub.add_parser("protected", parents=[client_opts], help="Fetch the protected resource")
    sub.add_parser("logout", parents=[client_opts], help="Revoke the saved refresh token")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "serve":
        return _serve(args)
    if args.command == "sweep":
        return _sweep(args)
    return _run_client(args)


if __name__ == "__main__":
    sys.exit(main())
