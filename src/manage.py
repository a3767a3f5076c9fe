"""Commerce management CLI.

Usage:
    python src/manage.py setup-db                    # Create all tables
    python src/manage.py drop-db                     # Drop all tables
    python src/manage.py sweep-abandoned --minutes 90
    python src/manage.py audit-stock                 # Counters vs. movement ledger
"""

import argparse
import sys


def setup_databases():
    """Create the domain's tables and the stock store's tables."""
    from commerce.domain import commerce
    from commerce.utils.db import setup_db

    print("Initializing commerce domain...")
    commerce.init()
    print("Creating database schema...")
    setup_db(commerce)
    print("Done.")


def drop_databases():
    from commerce.domain import commerce
    from commerce.utils.db import drop_db

    print("Initializing commerce domain...")
    commerce.init()
    print("Dropping database schema...")
    drop_db(commerce)
    print("Done.")


def sweep_abandoned(minutes=None):
    """Cancel pending orders whose payment never completed."""
    from commerce.domain import commerce
    from commerce.order.abandonment import sweep_abandoned_orders

    commerce.init()
    with commerce.domain_context():
        cancelled = sweep_abandoned_orders(older_than_minutes=minutes)

    for order_id in cancelled:
        print(f"  cancelled {order_id}")
    print(f"Done. {len(cancelled)} order(s) cancelled.")
    return cancelled


def audit_stock():
    """Report products whose counter disagrees with the sum of their movements."""
    from commerce.inventory.ledger import audit

    discrepancies = audit()
    for item in discrepancies:
        print(f"  {item.product_id}: counter={item.stock_quantity} ledger={item.ledger_quantity}")
    if discrepancies:
        print(f"{len(discrepancies)} discrepancy(ies) found.")
    else:
        print("Ledger consistent.")
    return discrepancies


def main(argv=None):
    parser = argparse.ArgumentParser(description="Commerce management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    sweep_parser = subparsers.add_parser("sweep-abandoned", help="Cancel abandoned pending orders")
    sweep_parser.add_argument(
        "--minutes",
        type=int,
        default=None,
        help="Age in minutes after which a pending order is abandoned (default: COMMERCE_ABANDONMENT_MINUTES)",
    )

    subparsers.add_parser("audit-stock", help="Check stock counters against the movement ledger")

    args = parser.parse_args(argv)

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "sweep-abandoned":
        sweep_abandoned(args.minutes)
    elif args.command == "audit-stock":
        if audit_stock():
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
