#!/usr/bin/env python3
"""
authgate -- Google OAuth2 login sessions and signed bearer tokens.

Operator helpers. The service itself runs under uvicorn (see asgi.py).

Usage:
  python main.py hash-password              (prompts for the password)
  python main.py hash-password s3cret
  python main.py check-config

Environment variables:
  SECRET_KEY            Token signing key, at least 32 characters.
  GOOGLE_CLIENT_ID      OAuth2 client ID issued by Google.
  GOOGLE_CLIENT_SECRET  OAuth2 client secret issued by Google.
"""

import argparse
import getpass
import sys
from typing import Optional

from pydantic import ValidationError

from auth.errors import ConfigurationError
from auth.oauth import ProviderConfig
from auth.passwords import hash_password
from core.config import Settings


def _hash_password(password: Optional[str]) -> int:
    if password is None:
        password = getpass.getpass("Password: ")
    if not password:
        print("  [!] Password must not be empty.", file=sys.stderr)
        return 1
    if len(password.encode("utf-8")) > 72:
        print("  [!] bcrypt only accepts passwords up to 72 bytes.", file=sys.stderr)
        return 1
    print(hash_password(password))
    return 0


def _check_config() -> int:
    """Load Settings and the Google client config exactly as the service does at startup."""
    try:
        settings = Settings()
        provider = ProviderConfig.from_settings(settings)
    except (ValidationError, ConfigurationError) as e:
        print(f"  [!] Configuration error: {e}", file=sys.stderr)
        return 1

    print(f"  debug:             {settings.debug}")
    print(f"  token issuer:      {settings.token_issuer}")
    print(f"  access token TTL:  {settings.access_token_expire_seconds}s")
    print(f"  refresh token TTL: {settings.refresh_token_expire_seconds}s")
    print(f"  redirect URL:      {provider.redirect_url}")
    print(f"  scopes:            {' '.join(provider.scopes)}")
    print("  OK")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="authgate",
        description="Operator helpers for the authgate service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py hash-password
  SECRET_KEY=... GOOGLE_CLIENT_ID=... GOOGLE_CLIENT_SECRET=... python main.py check-config
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    hp = sub.add_parser("hash-password", help="Print a bcrypt hash for a local credential.")
    hp.add_argument("password", nargs="?", help="Plaintext password (prompted for when omitted).")

    sub.add_parser("check-config", help="Validate the environment and print the effective settings.")

    args = parser.parse_args(argv)
    if args.command == "hash-password":
        return _hash_password(args.password)
    return _check_config()


if __name__ == "__main__":
    sys.exit(main())
