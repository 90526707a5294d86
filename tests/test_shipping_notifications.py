"""
Shipping notification tests. requests.post is mocked; nothing leaves the process.
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
import requests

import shipping_notifications
from shipping_notifications import ShippingNotifier
from tracking_utils import parse_tracking_number


@pytest.fixture
def notifier(monkeypatch):
    monkeypatch.setenv("KLAVIYO_API_KEY", "pk_test")
    monkeypatch.setenv("KLAVIYO_ENABLE", "true")
    return ShippingNotifier()


@pytest.fixture
def post(monkeypatch):
    mock = MagicMock(return_value=MagicMock(status_code=202, text=""))
    monkeypatch.setattr(shipping_notifications.requests, "post", mock)
    return mock


def test_disabled_without_api_key(monkeypatch, post):
    monkeypatch.delenv("KLAVIYO_API_KEY", raising=False)
    notifier = ShippingNotifier()

    assert notifier.enabled is False
    assert notifier.send_order_shipped("ord_1", "buyer@example.com", parse_tracking_number("1Z999AA10123456784")) is False
    post.assert_not_called()


def test_disabled_by_flag(monkeypatch, post):
    monkeypatch.setenv("KLAVIYO_API_KEY", "pk_test")
    monkeypatch.setenv("KLAVIYO_ENABLE", "false")
    assert ShippingNotifier().enabled is False


def test_requires_customer_email(notifier, post):
    assert notifier.send_order_shipped("ord_1", "", parse_tracking_number("1Z999AA10123456784")) is False
    post.assert_not_called()


def test_sends_order_shipped_event(notifier, post):
    info = parse_tracking_number("1Z999AA10123456784")

    sent = notifier.send_order_shipped(
        "a1b2c3d4e5f6g7h8",
        "buyer@example.com",
        info,
        customer_name="Ada Lovelace Stone",
    )

    assert sent is True
    args, kwargs = post.call_args
    assert args[0] == "https://a.klaviyo.com/api/events/"
    assert kwargs["headers"]["Authorization"] == "Klaviyo-API-Key pk_test"
    assert kwargs["timeout"] == 5

    attributes = kwargs["json"]["data"]["attributes"]
    assert attributes["metric"]["data"]["attributes"]["name"] == "Order Shipped"

    profile = attributes["profile"]["data"]["attributes"]
    assert profile == {"email": "buyer@example.com", "first_name": "Ada", "last_name": "Lovelace Stone"}

    properties = attributes["properties"]
    assert properties["order_number"] == "#E5F6G7H8"
    assert properties["tracking_number"] == "1Z999AA10123456784"
    assert properties["formatted_tracking_number"] == "1Z 999A A101 2345 6784"
    assert properties["shipping_provider"] == "ups"
    assert properties["shipping_provider_name"] == "UPS"
    assert properties["tracking_url"] == info.tracking_url


def test_uses_given_order_number(notifier, post):
    notifier.send_order_shipped(
        "ord_1", "buyer@example.com", parse_tracking_number("9400111899223197428490"), order_number="CS-1001"
    )
    properties = post.call_args.kwargs["json"]["data"]["attributes"]["properties"]
    assert properties["order_number"] == "CS-1001"
    assert properties["shipping_provider_name"] == "USPS"


def test_api_error_returns_false(notifier, post):
    post.return_value = MagicMock(status_code=400, text="bad request")
    assert notifier.send_order_shipped("ord_1", "buyer@example.com", parse_tracking_number("T1234567890")) is False


@pytest.mark.parametrize(
    "error",
    [requests.exceptions.Timeout("slow"), requests.exceptions.ConnectionError("down")],
)
def test_request_failures_return_false(notifier, post, error):
    post.side_effect = error
    assert notifier.send_order_shipped("ord_1", "buyer@example.com", parse_tracking_number("T1234567890")) is False


def test_unexpected_errors_return_false(notifier, post):
    post.side_effect = TypeError("Object of type UUID is not JSON serializable")
    info = parse_tracking_number("1Z999AA10123456784")
    assert notifier.send_order_shipped(uuid4(), "buyer@example.com", info) is False
