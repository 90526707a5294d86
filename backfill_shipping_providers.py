#!/usr/bin/env python3
"""
Backfill script to re-detect the shipping provider of existing orders.

Finds orders that have a tracking number but a missing or out-of-date
shipping_provider (e.g. orders shipped before carrier detection existed,
or before the UPS Mail Innovations 927 rule) and updates them.
"""

import sys

from dotenv import load_dotenv

# Load environment variables before DATABASE_URL is read
load_dotenv()

from tracking_utils import detect_shipping_provider, get_provider_display_name
from order_tracking import get_db_connection


def find_orders_with_tracking(conn):
    """
    Find all orders that have a tracking number.

    Returns:
        List of order rows (id, order_number, tracking_number, shipping_provider)
    """
    cursor = conn.cursor()
    cursor.execute("""
        SELECT id, order_number, tracking_number, shipping_provider
        FROM orders
        WHERE tracking_number IS NOT NULL
          AND tracking_number <> ''
        ORDER BY shipped_at DESC NULLS LAST
    """)
    orders = cursor.fetchall()
    cursor.close()
    return orders


def find_provider_changes(orders):
    """
    Compare stored providers against detection.

    Returns:
        List of (order, detected_provider) for orders whose provider would change
    """
    changes = []
    for order in orders:
        detected = detect_shipping_provider(order['tracking_number']).value
        if (order.get('shipping_provider') or '') != detected:
            changes.append((order, detected))
    return changes


def apply_provider_changes(conn, changes):
    """
    Write all provider changes in a single transaction.
    Either every order is updated or, on any error, none are.
    """
    conn.autocommit = False
    cursor = conn.cursor()
    try:
        for order, detected in changes:
            label = order.get('order_number') or order['id']
            stored = order.get('shipping_provider') or '(none)'
            cursor.execute("""
                UPDATE orders
                SET shipping_provider = %s
                WHERE id = %s
            """, (detected, order['id']))
            print(f"   {label}: {order['tracking_number']} {stored} -> {get_provider_display_name(detected)}")
        conn.commit()
    except Exception:
        conn.rollback()
        print("❌ Backfill failed, all changes rolled back")
        raise
    finally:
        cursor.close()


def backfill_shipping_providers(get_db_connection=get_db_connection, dry_run=False):
    """
    Main backfill function.

    Args:
        get_db_connection: Function that returns a database connection
        dry_run: If True, only report what would be done without making changes

    Returns:
        Dict with the number of orders checked and changed
    """
    print("=" * 70)
    print("BACKFILL: SHIPPING PROVIDERS")
    print("=" * 70)

    if dry_run:
        print("🔍 DRY RUN MODE - No changes will be made to the database")
        print("")

    conn = get_db_connection()

    try:
        print("Searching for orders with tracking numbers...")
        orders = find_orders_with_tracking(conn)
        print(f"Found {len(orders)} orders with tracking numbers")

        changes = find_provider_changes(orders)

        if not changes:
            print("✅ All shipping providers are up to date!")
            return {"checked": len(orders), "changed": 0}

        if dry_run:
            for order, detected in changes:
                label = order.get('order_number') or order['id']
                stored = order.get('shipping_provider') or '(none)'
                print(f"[DRY RUN] Would update order {label}: {order['tracking_number']} "
                      f"{stored} -> {get_provider_display_name(detected)}")
        else:
            apply_provider_changes(conn, changes)

        print("")
        print("=" * 70)
        print("BACKFILL COMPLETE")
        print("=" * 70)

        if dry_run:
            print(f"Would update {len(changes)} of {len(orders)} orders")
            print("")
            print("Run without --dry-run to apply changes")
        else:
            print(f"Updated {len(changes)} of {len(orders)} orders")

        return {"checked": len(orders), "changed": len(changes)}
    finally:
        conn.close()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description='Re-detect shipping providers for orders with tracking numbers'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be done without making changes'
    )

    args = parser.parse_args()

    try:
        backfill_shipping_providers(dry_run=args.dry_run)
    except KeyboardInterrupt:
        print("\n\n⚠️  Interrupted by user")
        sys.exit(1)
    except Exception as e:
        print(f"\n\n❌ Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
