#!/usr/bin/env python3
"""
Generate a signing secret for API bearer tokens.
Copy the printed line into your .env file.
"""

import secrets

if __name__ == "__main__":
    print("=" * 60)
    print("Fleet API – JWT secret generator")
    print("=" * 60)

    secret_key = secrets.token_hex(32)

    print(f"\nJWT_SECRET_KEY={secret_key}\n")
    print("Tokens signed with the previous secret stop verifying once this")
    print("value is deployed; users will have to log in again.")
    print("=" * 60)
