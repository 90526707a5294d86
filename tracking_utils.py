#!/usr/bin/env python3
"""
Utility functions for shipping tracking number detection and validation.
Classifies a tracking number by carrier (USPS, UPS, FedEx or other),
builds carrier tracking links and formats numbers for display.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union
from urllib.parse import quote


class ShippingProvider(str, Enum):
    USPS = "usps"
    UPS = "ups"
    FEDEX = "fedex"
    OTHER = "other"


ProviderLike = Union[ShippingProvider, str, None]


class TrackingNumberError(ValueError):
    """Raised when a tracking number fails validation in parse_tracking_number."""


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class TrackingInfo:
    tracking_number: str
    provider: ShippingProvider
    tracking_url: str

    def to_dict(self) -> dict:
        return {
            "trackingNumber": self.tracking_number,
            "provider": self.provider.value,
            "trackingUrl": self.tracking_url,
        }


# ═══════════════════════════════════════════════════════════════════
# Carrier rules, checked in order (first match wins).
# UPS Mail Innovations numbers (927 + 19 digits) overlap the USPS
# 20-22 digit formats, so both USPS digit rules exclude 927.
# ═══════════════════════════════════════════════════════════════════

CARRIER_RULES: Tuple[Tuple["re.Pattern", ShippingProvider], ...] = (
    # USPS Tracking: 20-22 digits starting with 94, 93, 92, 95
    (re.compile(r"(?!927)(94|93|92|95)\d{18,20}", re.ASCII), ShippingProvider.USPS),
    # Priority Mail Express / International: 2 letters + 9 digits + US
    (re.compile(r"[A-Z]{2}\d{9}US", re.ASCII), ShippingProvider.USPS),
    # Global Express Guaranteed: 82 + 8 digits + US
    (re.compile(r"82\d{8}US", re.ASCII), ShippingProvider.USPS),
    # UPS: 1Z + 15-18 alphanumeric
    (re.compile(r"1Z[0-9A-Z]{15,18}", re.ASCII), ShippingProvider.UPS),
    # UPS Mail Innovations / SurePost: 22 digits starting with 927
    (re.compile(r"927\d{19}", re.ASCII), ShippingProvider.UPS),
    # UPS Freight
    (re.compile(r"PRO\d+", re.ASCII), ShippingProvider.UPS),
    # UPS Ground
    (re.compile(r"T\d{10}", re.ASCII), ShippingProvider.UPS),
    # UPS numeric
    (re.compile(r"\d{9,12}", re.ASCII), ShippingProvider.UPS),
    # USPS numeric fallback
    (re.compile(r"(?!927)\d{20,22}", re.ASCII), ShippingProvider.USPS),
)

TRACKING_URLS = {
    ShippingProvider.USPS: "https://tools.usps.com/go/TrackConfirmAction?qtc_tLabels1={number}",
    ShippingProvider.UPS: "https://www.ups.com/track?tracknum={number}",
    ShippingProvider.FEDEX: "https://www.fedex.com/fedextrack/?trknbr={number}",
}

SEARCH_URL = "https://www.google.com/search?q={query}"

DISPLAY_NAMES = {
    ShippingProvider.USPS: "USPS",
    ShippingProvider.UPS: "UPS",
    ShippingProvider.FEDEX: "FedEx",
    ShippingProvider.OTHER: "Other",
}

MIN_LENGTH = 5
MAX_LENGTH = 30

# Byte order marks count as whitespace; numbers pasted from documents can carry one
_WHITESPACE = re.compile(r"[\s\ufeff]")
_EDGE_WHITESPACE = re.compile(r"^[\s\ufeff]+|[\s\ufeff]+$")
_ALPHANUMERIC = re.compile(r"[A-Za-z0-9]+", re.ASCII)

# Same unreserved set as JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


def _strip_whitespace(tracking_number: str) -> str:
    return _WHITESPACE.sub("", tracking_number or "")


def _trim(tracking_number: str) -> str:
    return _EDGE_WHITESPACE.sub("", tracking_number or "")


def coerce_provider(provider: ProviderLike) -> ShippingProvider:
    """
    Convert a provider tag (enum member or plain string) to ShippingProvider.

    Unknown or empty tags map to ShippingProvider.OTHER.
    """
    if isinstance(provider, ShippingProvider):
        return provider
    try:
        return ShippingProvider(str(provider or "").strip().lower())
    except ValueError:
        return ShippingProvider.OTHER


def detect_shipping_provider(tracking_number: str) -> ShippingProvider:
    """
    Detect the shipping provider from the tracking number format.

    Matching is done on an uppercased copy with all whitespace removed.
    FedEx has no dedicated pattern, so FedEx numbers either match one of
    the numeric UPS/USPS rules or come back as OTHER.

    Args:
        tracking_number: Raw tracking number, not pre-validated

    Returns:
        The first matching provider, or ShippingProvider.OTHER
    """
    cleaned = _strip_whitespace(tracking_number).upper()

    for pattern, provider in CARRIER_RULES:
        if pattern.fullmatch(cleaned):
            return provider

    return ShippingProvider.OTHER


def validate_tracking_number(tracking_number: str) -> ValidationResult:
    """
    Carrier-agnostic syntax check for an operator-entered tracking number.

    Args:
        tracking_number: Raw tracking number

    Returns:
        ValidationResult with is_valid and, on failure, a user-facing error
    """
    if not _trim(tracking_number):
        return ValidationResult(False, "Tracking number is required")

    cleaned = _strip_whitespace(tracking_number)

    if len(cleaned) < MIN_LENGTH:
        return ValidationResult(False, "Tracking number is too short")

    if len(cleaned) > MAX_LENGTH:
        return ValidationResult(False, "Tracking number is too long")

    if not _ALPHANUMERIC.fullmatch(cleaned):
        return ValidationResult(False, "Tracking number contains invalid characters")

    return ValidationResult(True)


def generate_tracking_url(tracking_number: str, provider: ProviderLike) -> str:
    """
    Build the carrier tracking URL for a tracking number.

    Unknown providers get a web search link for "<number> tracking".
    No validation is done here.
    """
    cleaned = _strip_whitespace(tracking_number)
    template = TRACKING_URLS.get(coerce_provider(provider))

    if template is None:
        query = quote(f"{cleaned} tracking", safe=_URI_COMPONENT_SAFE)
        return SEARCH_URL.format(query=query)

    return template.format(number=cleaned)


def get_provider_display_name(provider: ProviderLike) -> str:
    """Human-readable carrier name, e.g. "FedEx"."""
    return DISPLAY_NAMES[coerce_provider(provider)]


def parse_tracking_number(tracking_number: str) -> TrackingInfo:
    """
    Validate, classify and link a tracking number in one call.

    Args:
        tracking_number: Raw tracking number

    Returns:
        TrackingInfo with the trimmed (not normalized) tracking number

    Raises:
        TrackingNumberError: If the tracking number fails validation
    """
    validation = validate_tracking_number(tracking_number)

    if not validation.is_valid:
        raise TrackingNumberError(validation.error)

    provider = detect_shipping_provider(tracking_number)

    return TrackingInfo(
        tracking_number=_trim(tracking_number),
        provider=provider,
        tracking_url=generate_tracking_url(tracking_number, provider),
    )


def _group_by_four(cleaned: str) -> str:
    return " ".join(cleaned[i:i + 4] for i in range(0, len(cleaned), 4))


def format_tracking_number(tracking_number: str, provider: ProviderLike) -> str:
    """
    Format a tracking number for display.

    UPS 1Z numbers (18 chars): 1Z XXXX XXXX XXXX XXXX
    Everything else: a space every 4 characters
    """
    cleaned = _strip_whitespace(tracking_number)

    if (
        coerce_provider(provider) is ShippingProvider.UPS
        and cleaned.startswith("1Z")
        and len(cleaned) == 18
    ):
        return " ".join(
            (cleaned[0:2], cleaned[2:6], cleaned[6:10], cleaned[10:14], cleaned[14:18])
        )

    return _group_by_four(cleaned)


# ═══════════════════════════════════════════════════════════════════
# Manual check
# ═══════════════════════════════════════════════════════════════════

if __name__ == "__main__":
    print("=" * 60)
    print("TRACKING NUMBER CLASSIFICATION")
    print("=" * 60)

    samples = [
        "1Z999AA10123456784",
        "9400111899223197428490",
        "9270111899223197428490",
        "EA123456789US",
        "T1234567890",
        "AB-12345",
    ]

    for sample in samples:
        result = validate_tracking_number(sample)
        if not result.is_valid:
            print(f"\n{sample}: invalid ({result.error})")
            continue
        info = parse_tracking_number(sample)
        print(f"\n{sample}")
        print(f"  Carrier:   {get_provider_display_name(info.provider)}")
        print(f"  Formatted: {format_tracking_number(sample, info.provider)}")
        print(f"  URL:       {info.tracking_url}")
