#!/usr/bin/env python3
"""
Refresh a counterparty's regional registration number from the tax authority.

Reuses a lookup younger than the configured cache window unless --force is
given.  Prints a short summary and exits 0 on success, 1 on failure.

Usage:
    python3 scripts/registry_lookup.py --subject-id <uuid>
    python3 scripts/registry_lookup.py --subject-id <uuid> --force
    FISCAL_REGISTRY_DEBUG=1 python3 scripts/registry_lookup.py --subject-id <uuid>

Prerequisites:
  - Database reachable at --db-url, FISCAL_DATABASE_URL or the configured url.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEBUG_ENV = "FISCAL_REGISTRY_DEBUG"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Look up a counterparty's state registration")
    p.add_argument("--subject-id", required=True, type=UUID, help="Counterparty id")
    p.add_argument("--force", action="store_true", help="Bypass the cache window")
    p.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: FISCAL_DATABASE_URL or the configured url)",
    )
    return p.parse_args(argv)


def run_lookup(session, subject_id: UUID, force: bool, client, clock=None, registry_config=None):
    """Run one lookup with an explicit session and client."""
    from fiscal_kernel.models.fiscal_emission import Environment
    from fiscal_kernel.services.registry_lookup import DEFAULT_CACHE_DAYS, RegistryLookupCache

    cache = RegistryLookupCache(
        session,
        client,
        clock=clock,
        cache_days=registry_config.cache_days if registry_config else DEFAULT_CACHE_DAYS,
        environment=(
            Environment.parse(registry_config.environment) if registry_config else Environment.PRODUCTION
        ),
    )
    return cache.lookup(subject_id, force=force)


def _print_result(subject_id: UUID, result) -> None:
    print()
    print(f"  Counterparty: {subject_id}")
    if result.success:
        source = "cache" if result.cached else "authority"
        print(f"  Registration: {result.value}  (from {source})")
    else:
        cached = "  (cached failure)" if result.cached else ""
        print(f"  Lookup failed: {result.error}{cached}")
    print()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from fiscal_authority.client import GovernmentSoapClient
    from fiscal_authority.transport import HttpTransport
    from fiscal_config import get_active_config
    from fiscal_kernel.db.engine import get_session, init_engine_from_url
    from fiscal_kernel.logging_config import configure_logging

    debug = os.environ.get(DEBUG_ENV) == "1"
    configure_logging(level=logging.DEBUG if debug else logging.WARNING, stream=sys.stderr)

    try:
        config = get_active_config()
    except (OSError, ValueError) as exc:
        print(f"  ERROR: cannot load configuration: {exc}", file=sys.stderr)
        return 1

    db_url = args.db_url or config.database.url
    try:
        init_engine_from_url(db_url, echo=debug)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    client = GovernmentSoapClient.from_config(config.authority, transport=HttpTransport())
    session = get_session()
    try:
        result = run_lookup(session, args.subject_id, args.force, client, registry_config=config.registry)
    finally:
        session.close()

    _print_result(args.subject_id, result)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
