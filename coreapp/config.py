"""
Configuration access for the booking engine.

Values are resolved from the GlobalSetting table first, then from
settings.RENTALHUB, then from the hardcoded defaults below. Lookups never
raise: a database failure or an unparsable value is logged and the default
is returned so that a misconfigured setting cannot fail a booking.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import DatabaseError

from .models import GlobalSetting
from .money import to_decimal

logger = logging.getLogger(__name__)

PLATFORM_FEE_PERCENTAGE = 'Booking:PlatformFeePercentage'
DEFAULT_DRIVER_DAILY_RATE = 'Booking:DefaultDriverDailyRate'
TURNAROUND_BUFFER_HOURS = 'Booking:TurnaroundBufferHours'
ADJUSTMENT_THRESHOLD = 'Booking:AdjustmentThreshold'
UNPAID_TIMEOUT_HOURS = 'Booking:UnpaidTimeoutHours'
DEPOSIT_REFUND_DUE_DAYS = 'Booking:DepositRefundDueDays'
DEFAULT_MILEAGE_ALLOWANCE = 'Vehicle:DefaultMileageAllowancePerDay'
DEFAULT_EXTRA_KM_RATE = 'Vehicle:DefaultExtraKmRate'
MILEAGE_CHARGING_ENABLED = 'Mileage:ChargingEnabled'
INSTANT_WITHDRAWAL_FEE_PERCENTAGE = 'Payout:InstantWithdrawalFeePercentage'

DEFAULTS = {
    PLATFORM_FEE_PERCENTAGE: Decimal('15.0'),
    DEFAULT_DRIVER_DAILY_RATE: Decimal('45.00'),
    TURNAROUND_BUFFER_HOURS: 4,
    ADJUSTMENT_THRESHOLD: Decimal('0.01'),
    UNPAID_TIMEOUT_HOURS: 4,
    DEPOSIT_REFUND_DUE_DAYS: 2,
    DEFAULT_MILEAGE_ALLOWANCE: 600,
    DEFAULT_EXTRA_KM_RATE: Decimal('0.30'),
    MILEAGE_CHARGING_ENABLED: True,
    INSTANT_WITHDRAWAL_FEE_PERCENTAGE: Decimal('3.0'),
}

_MISSING = object()


def currency():
    return getattr(settings, 'RENTALHUB', {}).get('CURRENCY', 'GHS')


class ConfigService:
    """Single entry point for runtime configuration, injected into the engine classes."""

    def __init__(self, overrides=None):
        self.overrides = dict(overrides or {})

    def get_value(self, key):
        if key in self.overrides:
            return self.overrides[key]
        try:
            row = GlobalSetting.objects.filter(key=key).first()
        except DatabaseError:
            logger.exception("Failed to read config key %s, using fallback", key)
            row = None
        if row is not None and row.value.strip():
            return row.value
        fallback = getattr(settings, 'RENTALHUB', {}).get(key, _MISSING)
        if fallback is not _MISSING:
            return fallback
        return None

    def _default(self, key, default):
        if default is not None:
            return default
        return DEFAULTS.get(key)

    def get_decimal(self, key, default=None):
        default = self._default(key, default)
        value = self.get_value(key)
        if value is None:
            return to_decimal(default)
        parsed = to_decimal(value, default=None)
        if parsed is None or not parsed.is_finite():
            logger.warning("Config value %r for %s is not a decimal, using %s", value, key, default)
            return to_decimal(default)
        return parsed

    def get_int(self, key, default=None):
        default = self._default(key, default)
        value = self.get_value(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Config value %r for %s is not an integer, using %s", value, key, default)
            return default

    def get_bool(self, key, default=None):
        default = self._default(key, default)
        value = self.get_value(key)
        if value is None:
            return bool(default)
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ('1', 'true', 'yes', 'on'):
            return True
        if text in ('0', 'false', 'no', 'off'):
            return False
        logger.warning("Config value %r for %s is not a boolean, using %s", value, key, default)
        return bool(default)
