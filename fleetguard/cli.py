"""
Interactive console for the fleet database.
Browse companies, drivers, vehicles, passengers, routes and alerts with the
same role-scoped visibility the REST API enforces.
"""

import sys

import pandas as pd

from fleetguard.analysis import collect_stats
from fleetguard.api.app import build_services
from fleetguard.database import init_engine, init_schema
from fleetguard.errors import FleetError, normalize
from fleetguard.scope import SCOPE_RULES, check_affiliation, check_record, derive_filter

PREVIEW_ROWS = 20

HELP = (
    "Commands:\n"
    "  list <family> [key=value ...]   scoped listing (e.g. list routes status=scheduled)\n"
    "  show <family> <id>              one record\n"
    "  stats                           dashboard counts\n"
    "  quit"
)


def _parse_params(tokens):
    params = {}
    for tok in tokens:
        if "=" in tok:
            key, value = tok.split("=", 1)
            params[key] = value
    return params


def run_command(services, identity, line: str) -> str:
    """Execute one console command and return the text to print."""
    parts = line.split()
    cmd, args = parts[0].lower(), parts[1:]

    if cmd == "stats":
        data = collect_stats(services.stores(), identity)
        frame = pd.DataFrame(
            [{"family": f, "total": s["total"], **s["by_status"]} for f, s in data.items()]
        ).fillna(0)
        return frame.to_string(index=False) if not frame.empty else "(nothing visible)"

    if cmd in {"list", "show"}:
        if not args or args[0] not in SCOPE_RULES:
            return f"Unknown family. Choose one of: {', '.join(sorted(SCOPE_RULES))}"
        family = args[0]
        store = services.stores()[family]

        if cmd == "list":
            criteria = derive_filter(identity, family, _parse_params(args[1:]))
            rows, total = store.find_with_filters(criteria, 0, PREVIEW_ROWS)
            if not rows:
                return "(no rows returned)"
            return f"{total} row(s)\n" + pd.DataFrame(rows).to_string(index=False)

        if len(args) < 2:
            return "Usage: show <family> <id>"
        check_affiliation(identity, family)
        record = store.find_by_id(args[1])
        check_record(identity, family, record)
        return pd.Series(record).to_string()

    return HELP


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv

    engine = init_engine()
    if argv and argv[0] == "init-db":
        init_schema(engine)
        print("[init] Schema created.")
        return

    print("=== Fleet Management console (role-scoped) ===\n")
    services = build_services(engine)

    # ── Login ────────────────────────────────────────────────────────
    try:
        token = input("Enter bearer token (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not token or token.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        identity = services.resolver.resolve(f"Bearer {token}")
    except FleetError as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e.message)
        return

    print(f"\n[auth] Logged in as: {identity.name} (role={identity.role})")
    print(HELP)

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            line = input("\n> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not line:
            continue
        if line.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break

        try:
            print(run_command(services, identity, line))
        except Exception as e:
            err = normalize(e)
            print(f"\n[{err.code.upper()}] {err.message}")


if __name__ == "__main__":
    main()
