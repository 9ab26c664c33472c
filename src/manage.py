"""Commerce management CLI.

Creates and drops the database schemas and runs the reservation expiry sweep
(meant to be invoked by an external scheduler such as cron).

Usage:
    python src/manage.py setup-db         # Create all tables
    python src/manage.py drop-db          # Drop all tables
    python src/manage.py sweep-expired    # Expire stale reservations, cancel their orders
"""

import argparse
import sys
from dataclasses import replace


def _services():
    from commerce.config import Settings
    from commerce.services import build_services

    settings = Settings.from_env()
    if settings.inventory_store != "sql":
        print("COMMERCE_INVENTORY_STORE is not 'sql'; using the SQL store for this command.")
        settings = replace(settings, inventory_store="sql")
    return build_services(settings)


def setup_databases():
    """Create the Protean provider tables and the inventory schema."""
    from commerce.domain import commerce
    from commerce.utils.db import setup_db

    print("Initializing commerce domain...")
    commerce.init()
    services = _services()
    print("Creating commerce database schema...")
    setup_db(commerce, services.store)
    print("Done.")


def drop_databases():
    """Drop the Protean provider tables and the inventory schema."""
    from commerce.domain import commerce
    from commerce.utils.db import drop_db

    print("Initializing commerce domain...")
    commerce.init()
    services = _services()
    print("Dropping commerce database schema...")
    drop_db(commerce, services.store)
    print("Done.")


def sweep_expired():
    """Expire HELD reservations past their expiry and cancel the waiting orders."""
    from commerce.domain import commerce
    from commerce.utils.logging import configure_logging

    configure_logging()
    commerce.init()
    services = _services()
    with commerce.domain_context():
        cancelled = services.orders.sweep_expired()
    print(f"Cancelled {len(cancelled)} order(s) with expired reservations.")


def main():
    parser = argparse.ArgumentParser(description="Commerce management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep-expired", help="Release expired reservations")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "sweep-expired":
        sweep_expired()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
