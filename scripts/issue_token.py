#!/usr/bin/env python3
"""
Issue a bearer token for an existing user, e.g. for the console or smoke tests.

Usage: python scripts/issue_token.py user@example.com
"""

import sys

from fleetguard.database import init_engine
from fleetguard.identity import JwtAuthProvider
from fleetguard.store import UserStore


def issue_token_for(engine, email: str, provider: JwtAuthProvider = None) -> str:
    """Token for the active user with ``email``; ValueError if there is none."""
    user = UserStore(engine).find_by_email(email)
    if not user or not user["is_active"]:
        raise ValueError(f"No active user with email {email}")
    provider = provider or JwtAuthProvider()
    return provider.issue_token(user["id"], user["role"])


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print(__doc__.strip(), file=sys.stderr)
        sys.exit(2)

    engine = init_engine()
    try:
        token = issue_token_for(engine, sys.argv[1])
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print("=" * 70)
    print(f"Bearer token for {sys.argv[1]}:")
    print("-" * 70)
    print(token)
    print("=" * 70)
