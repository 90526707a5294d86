# web_tracking.py

"""
Crystal Shop Tracking Service
Version: 1.0.0
Description: Tracking number classification and order fulfillment API
"""

__version__ = "1.0.0"

import os
import hmac
import logging
from functools import wraps

from dotenv import load_dotenv

load_dotenv()

from flask import Flask, request, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix

from tracking_utils import (
    detect_shipping_provider,
    format_tracking_number,
    get_provider_display_name,
    parse_tracking_number,
    validate_tracking_number,
    TrackingNumberError,
)
from order_tracking import (
    OrderUpdateError,
    get_db_connection,
    get_order_contact,
    get_order_tracking,
    update_order_status,
)
from shipping_notifications import ShippingNotifier

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Trust proxy headers (SSL is terminated at the load balancer)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

notifier = ShippingNotifier()


# ─────────────────────────────────────────────────────────────────────────────
# ── Helpers ───────────────────────────────────────────────────────────────────
# ─────────────────────────────────────────────────────────────────────────────

def admin_required(f):
    """Decorator to require the admin API token on a route."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = os.environ.get("ADMIN_API_TOKEN", "")
        supplied = request.headers.get("X-Admin-Token", "")

        if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
            logger.warning(f"Rejected admin request to {request.path} from {request.remote_addr}")
            return jsonify({'success': False, 'error': 'Unauthorized'}), 401

        return f(*args, **kwargs)
    return decorated_function


def get_json_body():
    """Request JSON as a dict; anything else (missing, malformed, a list) is treated as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_tracking_number_from_body(data=None):
    """
    Tracking number from a JSON body, under either tracking_number or trackingNumber.
    Non-string values (e.g. a bare JSON number) are converted to text so they
    go through normal validation.
    """
    if data is None:
        data = get_json_body()
    value = data.get('tracking_number')
    if value is None or value == '':
        value = data.get('trackingNumber')
    if value is None:
        return ''
    return value if isinstance(value, str) else str(value)


def notify_order_shipped(order_id, tracking_number):
    """Send the shipping notification. Failures never fail the order update."""
    try:
        contact = get_order_contact(get_db_connection, order_id)
        if not contact:
            return
        notifier.send_order_shipped(
            order_id=order_id,
            customer_email=contact.get('customer_email'),
            tracking_info=parse_tracking_number(tracking_number),
            order_number=contact.get('order_number'),
            customer_name=contact.get('customer_name'),
        )
    except Exception as e:
        logger.error(f"Error sending shipping notification for order {order_id}: {e}")


# ─────────────────────────────────────────────────────────────────────────────
# ── Routes ────────────────────────────────────────────────────────────────────
# ─────────────────────────────────────────────────────────────────────────────

@app.route("/health", methods=["GET"])
def health():
    return jsonify({'status': 'ok', 'version': __version__})


@app.route("/api/tracking/detect", methods=["GET"])
def detect_tracking():
    """Live carrier hint while an operator types a tracking number."""
    tracking_number = request.args.get('tracking_number', '')
    provider = detect_shipping_provider(tracking_number)
    return jsonify({
        'provider': provider.value,
        'display_name': get_provider_display_name(provider)
    })


@app.route("/api/tracking/validate", methods=["POST"])
def validate_tracking():
    result = validate_tracking_number(get_tracking_number_from_body())
    return jsonify({
        'isValid': result.is_valid,
        'error': result.error
    })


@app.route("/api/tracking/parse", methods=["POST"])
def parse_tracking():
    tracking_number = get_tracking_number_from_body()

    try:
        info = parse_tracking_number(tracking_number)
    except TrackingNumberError as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    data = info.to_dict()
    data['displayName'] = get_provider_display_name(info.provider)
    data['formatted'] = format_tracking_number(info.tracking_number, info.provider)

    return jsonify({'success': True, 'data': data})


@app.route("/api/admin/orders/<order_id>", methods=["PUT"])
@admin_required
def update_order(order_id):
    """
    Update an order's status.
    Marking an order shipped requires a tracking number, which is
    classified and stored with the order.
    """
    data = get_json_body()
    status = data.get('status')
    tracking_number = get_tracking_number_from_body(data)

    try:
        updated = update_order_status(get_db_connection, order_id, status, tracking_number)
    except OrderUpdateError as e:
        return jsonify({'success': False, 'error': e.message}), e.status_code
    except Exception as e:
        logger.error(f"Error in admin order API: {e}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    if status == "shipped":
        notify_order_shipped(order_id, tracking_number)

    return jsonify({
        'success': True,
        'data': updated,
        'message': 'Order status updated successfully'
    })


@app.route("/api/admin/orders/<order_id>/tracking", methods=["GET"])
@admin_required
def order_tracking_details(order_id):
    try:
        tracking = get_order_tracking(get_db_connection, order_id)
    except OrderUpdateError as e:
        return jsonify({'success': False, 'error': e.message}), e.status_code
    except Exception as e:
        logger.error(f"Error loading tracking for order {order_id}: {e}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    if tracking is None:
        return jsonify({'success': False, 'error': 'Order has no tracking number'}), 404

    return jsonify({'success': True, 'data': tracking})


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    app.run(host="0.0.0.0", port=port)
