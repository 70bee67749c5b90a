"""
Hourly rate table for home visits.
"""
import math
from typing import Optional

from homecare.booking_models import TimeSlot
from homecare.services.policy import PlatformPolicy

DAY_FIRST_HOUR = 50
EVENING_FIRST_HOUR = 70
ADDITIONAL_HOUR = 20
MIN_HOURS = 1
MAX_HOURS = 12


def clamp_hours(hours: Optional[int]) -> int:
    if not hours:
        return MIN_HOURS
    return max(MIN_HOURS, min(MAX_HOURS, int(hours)))


def calculate_base_price(hours: Optional[int], time_slot: Optional[TimeSlot]) -> float:
    hours = clamp_hours(hours)
    first_hour = EVENING_FIRST_HOUR if time_slot == TimeSlot.EVENING else DAY_FIRST_HOUR
    return float(first_hour + (hours - 1) * ADDITIONAL_HOUR)


def calculate_subtotal(
    hours: Optional[int], time_slot: Optional[TimeSlot], policy: PlatformPolicy
) -> float:
    """Base price plus the platform commission, rounded to whole units."""
    base = calculate_base_price(hours, time_slot)
    return float(base + round(base * policy.fee_percent / 100))


def round_money(amount: Optional[float]) -> Optional[float]:
    """Round to cents. None, NaN and infinities come back as None."""
    if amount is None:
        return None
    amount = float(amount)
    if not math.isfinite(amount):
        return None
    return round(amount, 2)
