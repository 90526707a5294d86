# shipping_notifications.py
import os
import requests
from datetime import datetime
from typing import Optional
import logging

from tracking_utils import TrackingInfo, format_tracking_number, get_provider_display_name

logger = logging.getLogger(__name__)


class ShippingNotifier:
    def __init__(self):
        """
        Initialize the Klaviyo Events API connection used for shipping notifications.
        Reads KLAVIYO_API_KEY from environment variables.
        """
        self.api_key = os.environ.get("KLAVIYO_API_KEY", "")
        self.enabled = os.environ.get("KLAVIYO_ENABLE", "true").lower() == "true"

        if not self.api_key:
            logger.warning("KLAVIYO_API_KEY not found in environment. Shipping notifications will be disabled.")
            self.enabled = False

        self.api_url = "https://a.klaviyo.com/api/events/"
        self.headers = {
            "Authorization": f"Klaviyo-API-Key {self.api_key}",
            "Content-Type": "application/json",
            "revision": "2024-10-15"
        }

    def send_order_shipped(
        self,
        order_id: str,
        customer_email: str,
        tracking_info: TrackingInfo,
        order_number: Optional[str] = None,
        customer_name: Optional[str] = None
    ) -> bool:
        """
        Send an 'Order Shipped' event to Klaviyo, which triggers the
        shipping confirmation email flow.

        Args:
            order_id: Internal order ID
            customer_email: Customer's email (required for Klaviyo)
            tracking_info: Parsed tracking info for the shipment
            order_number: Display order number, defaults to #<last 8 of id>
            customer_name: Customer's full name

        Returns:
            bool: True if event was sent successfully, False otherwise
        """
        if not self.enabled:
            logger.debug("Shipping notifications are disabled. Skipping event.")
            return False

        if not customer_email:
            logger.warning(f"No customer email for order {order_id}. Cannot send shipping notification.")
            return False

        provider = tracking_info.provider
        name_parts = (customer_name or "").split()

        try:
            event_payload = {
                "data": {
                    "type": "event",
                    "attributes": {
                        "profile": {
                            "data": {
                                "type": "profile",
                                "attributes": {
                                    "email": customer_email,
                                    "first_name": name_parts[0] if name_parts else "",
                                    "last_name": " ".join(name_parts[1:])
                                }
                            }
                        },
                        "metric": {
                            "data": {
                                "type": "metric",
                                "attributes": {
                                    "name": "Order Shipped"
                                }
                            }
                        },
                        "properties": {
                            "order_id": order_id,
                            "order_number": order_number or f"#{str(order_id)[-8:].upper()}",
                            "tracking_number": tracking_info.tracking_number,
                            "formatted_tracking_number": format_tracking_number(
                                tracking_info.tracking_number, provider
                            ),
                            "shipping_provider": provider.value,
                            "shipping_provider_name": get_provider_display_name(provider),
                            "tracking_url": tracking_info.tracking_url,
                            "customer_name": customer_name or "",
                        },
                        "time": datetime.now().isoformat(),
                    }
                }
            }

            response = requests.post(
                self.api_url,
                json=event_payload,
                headers=self.headers,
                timeout=5
            )

            if response.status_code in [200, 201, 202]:
                logger.info(f"✓ Order Shipped event sent for order {order_id} ({tracking_info.tracking_number})")
                return True
            else:
                logger.error(f"Klaviyo API error {response.status_code}: {response.text}")
                return False

        except requests.exceptions.Timeout:
            logger.error(f"Klaviyo API timeout for order: {order_id}")
            return False
        except requests.exceptions.RequestException as e:
            logger.error(f"Klaviyo API request failed: {str(e)}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending Order Shipped event: {str(e)}")
            return False
