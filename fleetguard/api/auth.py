"""
Authorization gate for the Flask API.
"""

from functools import wraps

from flask import g, request

from fleetguard.errors import InsufficientRole
from fleetguard.models import Identity


class AuthorizationGate:
    """
    Wraps view functions so they only run for an authenticated identity,
    optionally restricted to a set of roles.

    The gate holds nothing but the resolver; the identity is resolved again on
    every request and attached to ``flask.g``.
    """

    def __init__(self, resolver):
        self.resolver = resolver

    def require(self, *roles):
        allowed = frozenset(roles)

        def decorator(f):
            @wraps(f)
            def decorated(*args, **kwargs):
                identity = self.resolver.resolve(request.headers.get("Authorization"))
                if allowed and identity.role not in allowed:
                    raise InsufficientRole()
                g.identity = identity
                return f(*args, **kwargs)

            decorated.allowed_roles = allowed
            return decorated

        return decorator


def current_identity() -> Identity:
    """The identity attached by the gate for the current request."""
    return g.identity
