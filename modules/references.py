"""Reference generators for payment codes and order numbers."""

from __future__ import annotations

import secrets
import string
from datetime import datetime
from typing import Optional

from models.listing import utcnow


BASE36_ALPHABET = string.digits + string.ascii_uppercase

PAYMENT_CODE_PREFIX = "WA"
ORDER_NUMBER_PREFIX = "ORD"


def _epoch_ms(now: Optional[datetime]) -> int:
    return int((now or utcnow()).timestamp() * 1000)


def _random_base36(length: int) -> str:
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


def generate_payment_code(now: Optional[datetime] = None) -> str:
    """
    Payment code quoted on a bank transfer: ``WA`` + last 6 digits of the
    epoch milliseconds + 4 random base36 characters, e.g. ``WA4821937QX2``.

    Not unique by construction; the registry retries on collision.
    """
    millis = str(_epoch_ms(now))[-6:]
    return f"{PAYMENT_CODE_PREFIX}{millis}{_random_base36(4)}"


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Human-readable order reference: ``ORD-<epoch ms>-<6 base36 chars>``."""
    return f"{ORDER_NUMBER_PREFIX}-{_epoch_ms(now)}-{_random_base36(6)}"
