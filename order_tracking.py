# order_tracking.py
"""
Order fulfillment with shipping tracking.

Validates admin order status updates, attaches the classified tracking
number when an order is marked shipped, and reads the stored tracking
fields back for order-detail views.
"""

import os
import time
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import psycopg2
import psycopg2.extras

from tracking_utils import (
    coerce_provider,
    detect_shipping_provider,
    format_tracking_number,
    generate_tracking_url,
    get_provider_display_name,
    parse_tracking_number,
    validate_tracking_number,
)

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "")

VALID_ORDER_STATUSES = (
    "received",
    "paid",
    "shipped",
    "completed",
    "cancelled",
    "refunded",
)


class OrderUpdateError(Exception):
    """An order update was rejected. status_code is the HTTP status to return."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_db_connection():
    """
    Create a fresh PostgreSQL connection with retry logic.
    Rows come back as dicts (RealDictCursor).
    """
    max_retries = 3
    last_error = None

    for retry in range(max_retries):
        try:
            conn = psycopg2.connect(
                DATABASE_URL,
                cursor_factory=psycopg2.extras.RealDictCursor,
                connect_timeout=10
            )
            conn.autocommit = True
            return conn
        except psycopg2.OperationalError as e:
            last_error = e
            if retry < max_retries - 1:
                wait = min(2 ** retry, 4)
                logger.warning(f"Database connection failed (attempt {retry + 1}), retrying in {wait}s: {e}")
                time.sleep(wait)

    raise last_error


def init_tracking_columns(get_db_connection):
    """
    Add the tracking columns and indexes to the orders table.
    Safe to run repeatedly.
    """
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("ALTER TABLE orders ADD COLUMN IF NOT EXISTS tracking_number TEXT")
        cursor.execute("ALTER TABLE orders ADD COLUMN IF NOT EXISTS shipping_provider TEXT")
        cursor.execute("ALTER TABLE orders ADD COLUMN IF NOT EXISTS shipped_at TIMESTAMP")
        cursor.execute("CREATE INDEX IF NOT EXISTS orders_tracking_idx ON orders(tracking_number)")
        cursor.execute("CREATE INDEX IF NOT EXISTS orders_shipping_provider_idx ON orders(shipping_provider)")
        conn.commit()
        cursor.close()
        logger.info("Order tracking columns ready")
    finally:
        conn.close()


def build_order_status_update(
    status: Optional[str],
    tracking_number: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Validate a status change and build the column values to write.

    Args:
        status: New order status
        tracking_number: Tracking number (required when status is "shipped")
        now: Timestamp to stamp on the update (defaults to current UTC time)

    Returns:
        Dict of column -> value for the orders row

    Raises:
        OrderUpdateError: If the status or tracking number is rejected
    """
    if not status:
        raise OrderUpdateError("Status is required")

    if status not in VALID_ORDER_STATUSES:
        raise OrderUpdateError("Invalid status")

    if status == "shipped" and not tracking_number:
        raise OrderUpdateError("Tracking number is required when marking order as shipped")

    if tracking_number:
        validation = validate_tracking_number(tracking_number)
        if not validation.is_valid:
            raise OrderUpdateError(validation.error)

    now = now or datetime.now(timezone.utc)
    update = {
        "status": status,
        "updated_at": now,
    }

    if status == "shipped":
        info = parse_tracking_number(tracking_number)
        update["tracking_number"] = info.tracking_number
        update["shipping_provider"] = info.provider.value
        update["shipped_at"] = now

    return update


def update_order_status(
    get_db_connection,
    order_id: str,
    status: Optional[str],
    tracking_number: Optional[str] = None
) -> Dict[str, Any]:
    """
    Apply a status update (and tracking info when shipped) to an order.

    Returns:
        The updated order row (id, status, tracking and timestamp fields)

    Raises:
        OrderUpdateError: If the update is invalid or the order doesn't exist
    """
    update = build_order_status_update(status, tracking_number)

    # Column names come from build_order_status_update, never from the request
    columns = list(update.keys())
    assignments = ", ".join(f"{column} = %s" for column in columns)
    values = [update[column] for column in columns]

    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute(f"""
            UPDATE orders
            SET {assignments}
            WHERE id = %s
            RETURNING id, status, tracking_number, shipping_provider, shipped_at, updated_at
        """, (*values, order_id))
        row = cursor.fetchone()
        conn.commit()
        cursor.close()
    finally:
        conn.close()

    if not row:
        raise OrderUpdateError("Order not found", 404)

    if status == "shipped":
        logger.info(
            f"Order {order_id} shipped via {row.get('shipping_provider')}: {row.get('tracking_number')}"
        )
    else:
        logger.info(f"Order {order_id} status -> {status}")

    return dict(row)


def build_tracking_display(tracking_number: str, provider: Optional[str] = None) -> Dict[str, Any]:
    """
    Tracking fields as shown in order-detail views and emails.

    A stored provider tag is trusted as-is; when it's missing the
    provider is detected from the number.
    """
    resolved = coerce_provider(provider) if provider else detect_shipping_provider(tracking_number)

    return {
        "tracking_number": tracking_number,
        "formatted_tracking_number": format_tracking_number(tracking_number, resolved),
        "shipping_provider": resolved.value,
        "provider_display_name": get_provider_display_name(resolved),
        "tracking_url": generate_tracking_url(tracking_number, resolved),
    }


def get_order_tracking(get_db_connection, order_id: str) -> Optional[Dict[str, Any]]:
    """
    Load an order's tracking info for display.

    Returns:
        Tracking display dict, or None if the order hasn't been given a tracking number

    Raises:
        OrderUpdateError: If the order doesn't exist (404)
    """
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT id, tracking_number, shipping_provider, shipped_at
            FROM orders
            WHERE id = %s
            LIMIT 1
        """, (order_id,))
        row = cursor.fetchone()
        cursor.close()
    finally:
        conn.close()

    if not row:
        raise OrderUpdateError("Order not found", 404)

    if not row.get("tracking_number"):
        return None

    display = build_tracking_display(row["tracking_number"], row.get("shipping_provider"))
    display["shipped_at"] = row.get("shipped_at")
    return display


def get_order_contact(get_db_connection, order_id: str) -> Optional[Dict[str, Any]]:
    """
    Look up who to notify about an order.
    Guest orders have no customer row, so fall back to the guest email.
    """
    conn = get_db_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT o.id,
                   o.order_number,
                   COALESCE(c.email, o.guest_email) AS customer_email,
                   c.name AS customer_name
            FROM orders o
            LEFT JOIN customers c ON c.id = o.customer_id
            WHERE o.id = %s
            LIMIT 1
        """, (order_id,))
        row = cursor.fetchone()
        cursor.close()
    finally:
        conn.close()

    return dict(row) if row else None
