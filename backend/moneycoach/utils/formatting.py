from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def round_currency(value: Optional[float]) -> float:
    """
    Round a money amount to cents, halves away from zero.
    Goes through str() so 2.675 rounds to 2.68 rather than the binary 2.67.
    """
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


def iso_or_none(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_bool_param(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value.strip().lower() == "true"
