"""Delivery OTP primitives.

The code is a zero-padded string of ``DELIVERY_OTP_LENGTH`` digits drawn
from ``secrets``.  Expiry is absolute: a code is valid while
``now < expires_at`` and dead from ``expires_at`` on.
"""

from __future__ import annotations

import hmac
import secrets
from datetime import datetime, timedelta

from django.conf import settings


def otp_ttl() -> timedelta:
    return timedelta(minutes=settings.DELIVERY_OTP_TTL_MINUTES)


def generate_otp(length: int | None = None) -> str:
    length = length or settings.DELIVERY_OTP_LENGTH
    return f"{secrets.randbelow(10**length):0{length}d}"


def expiry_from(issued_at: datetime) -> datetime:
    return issued_at + otp_ttl()


def is_expired(expires_at: datetime | None, now: datetime) -> bool:
    """A missing expiry counts as expired."""
    return expires_at is None or now >= expires_at


def otp_matches(stored: str, submitted: str | None) -> bool:
    """Constant-time comparison of the stored and submitted codes."""
    if not stored or not submitted:
        return False
    return hmac.compare_digest(stored.encode(), submitted.strip().encode())
