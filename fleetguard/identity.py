"""
Identity resolution – bearer tokens in, Identity out.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from fleetguard.config import JWT_ALGORITHM, ROLES, SECRET_KEY, TOKEN_EXPIRY_HOURS
from fleetguard.errors import InvalidCredential, MissingCredential, UnknownPrincipal
from fleetguard.models import Identity

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class JwtAuthProvider:
    """Issues and verifies HS256 tokens whose subject is the user id."""

    def __init__(self, secret: str = SECRET_KEY, expiry_hours: int = TOKEN_EXPIRY_HOURS):
        self.secret = secret
        self.expiry_hours = expiry_hours

    def issue_token(self, user_id: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "role": role,
            "iat": now,
            "exp": now + timedelta(hours=self.expiry_hours),
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def expires_at(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(hours=self.expiry_hours)

    def verify_token(self, token: str) -> Optional[str]:
        """Return the principal id, or None when the token is rejected."""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.info("Rejected expired token")
            return None
        except jwt.InvalidTokenError:
            return None
        return payload.get("sub") or None


def extract_bearer(header: Optional[str]) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not header or not header.startswith(BEARER_PREFIX):
        raise MissingCredential()
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        raise MissingCredential()
    return token


class IdentityResolver:
    """Verifies the credential and loads the caller's profile. Nothing is cached."""

    def __init__(self, user_store, provider):
        self.users = user_store
        self.provider = provider

    def resolve(self, authorization_header: Optional[str]) -> Identity:
        token = extract_bearer(authorization_header)

        principal = self.provider.verify_token(token)
        if not principal:
            raise InvalidCredential()

        row = self.users.find_profile(principal)
        if not row:
            raise UnknownPrincipal()

        role = str(row["role"]).strip().lower()
        if role not in ROLES:
            raise UnknownPrincipal(f"Unsupported role '{row['role']}'")

        return Identity(
            id=str(row["id"]),
            email=str(row["email"]),
            name=str(row["name"]),
            role=role,
            company_id=str(row["company_id"]) if row["company_id"] is not None else None,
        )
