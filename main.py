#!/usr/bin/env python3
"""
Homi auth service launcher.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 5000
  python main.py serve --reload
  python main.py check-config

Environment variables (or .env):
  ACCESS_TOKEN_SECRET / REFRESH_TOKEN_SECRET   Required unless DEBUG=true. 32+ characters.
  ACCESS_TOKEN_TTL / REFRESH_TOKEN_TTL         Seconds. Defaults 900 / 604800.
  AUTH_PBKDF2_ITERATIONS / _DIGEST / _KEY_LENGTH   Defaults 310000 / sha512 / 64.
  MAX_REFRESH_TOKENS                           Outstanding refresh tokens per user. Default 5.
  DATABASE_URL                                 SQLAlchemy URL. Default: auth/homi_auth.db.
"""

import argparse
import sys

from pydantic import ValidationError as SettingsError

from core.config import get_settings


def _check_config() -> int:
    """Load Settings once and report whether the secret policy is satisfied."""
    try:
        settings = get_settings()
    except SettingsError as e:
        print(f"  [!] Invalid configuration:\n{e}")
        return 1
    print("  [+] Configuration OK")
    print(f"      access_token_ttl   = {settings.access_token_ttl}s")
    print(f"      refresh_token_ttl  = {settings.refresh_token_ttl}s")
    print(f"      pbkdf2             = {settings.auth_pbkdf2_digest} x {settings.auth_pbkdf2_iterations}")
    print(f"      max_refresh_tokens = {settings.max_refresh_tokens}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="homi-auth",
        description="Homi authentication service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1).")
    serve.add_argument("--port", type=int, default=5000, help="Bind port (default: 5000).")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development only).")

    sub.add_parser("check-config", help="Validate environment configuration and exit.")

    args = parser.parse_args(argv)

    if args.command == "check-config":
        return _check_config()

    # Fail fast on bad secrets before uvicorn starts accepting connections.
    if _check_config() != 0:
        return 1

    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
