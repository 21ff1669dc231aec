"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Roles ────────────────────────────────────────────────────────────
ELEVATED_ROLE = "admin"
COMPANY_SCOPED_ROLES = frozenset({"client", "operator"})
OWNER_SCOPED_ROLES = frozenset({"driver", "passenger"})
ROLES = frozenset({ELEVATED_ROLE}) | COMPANY_SCOPED_ROLES | OWNER_SCOPED_ROLES

# Roles a visitor may pick on /api/auth/register
SELF_REGISTER_ROLES = ROLES - {ELEVATED_ROLE}

# ── Domain values ────────────────────────────────────────────────────
COMPANY_STATUSES = ("active", "inactive")
ALERT_TYPES = ("critical", "warning", "info")
ALERT_PRIORITIES = ("low", "medium", "high")
VEHICLE_STATUSES = ("moving", "stopped", "problem", "garage")
ROUTE_SCHEDULED = "scheduled"
ROUTE_IN_PROGRESS = "in_progress"
ROUTE_FINISHED = "finished"

# ── Pagination ───────────────────────────────────────────────────────
DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100

# ── Auth ─────────────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
TOKEN_EXPIRY_HOURS = int(os.getenv("TOKEN_EXPIRY_HOURS", "24"))
MIN_PASSWORD_LENGTH = 6

# ── Stats fan-out ────────────────────────────────────────────────────
STATS_MAX_WORKERS = int(os.getenv("STATS_MAX_WORKERS", "6"))


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def allowed_origins() -> list:
    """CORS origins from ALLOWED_ORIGINS, falling back to local dev hosts."""
    raw = os.getenv("ALLOWED_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
