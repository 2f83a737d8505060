"""
Price breakdowns for prospective and existing bookings.

    rental       = daily rate x days
    driver       = driver daily rate x days
    insurance    = plan daily price x days
    protection   = per_day or fixed, clamped to [min_fee, max_fee]
    platform fee = (rental + driver) x percentage / 100
    total        = rental + deposit + driver + insurance + protection + platform fee

A promo code then either reduces the rental (owner vehicle discounts) or
replaces the total with the discounted amount (every other promo type).
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional

from accountapp.drivers import DriverDirectory
from coreapp.config import ConfigService, PLATFORM_FEE_PERCENTAGE, DEFAULT_DRIVER_DAILY_RATE, currency
from coreapp.exceptions import DomainError, NotFoundError, PolicyError, ValidationError
from coreapp.money import ZERO, clamp, multiply, percentage_of, quantize, sum_amounts, to_decimal
from promoapp.services import PromoCodeService
from vehicleapp.models import InsurancePlan, ProtectionPlan

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)


def day_count(pickup, return_):
    """Whole days billed for a window: max(1, ceil(duration / 24h))"""
    return max(1, -((pickup - return_) // DAY))


def protection_price(plan, days):
    if plan.pricing_mode == 'per_day':
        amount = to_decimal(plan.daily_price) * days
    else:
        amount = to_decimal(plan.fixed_price)
    return quantize(clamp(amount, plan.min_fee, plan.max_fee))


class AddonResolver:
    """
    Resolves an optional add-on: the explicitly selected one, else the active
    default, else nothing.
    - lookup(selected_id) / default_lookup() return the add-on or None
    - missing(selected_id) builds the error for an unknown selection
    - when_none() may raise if going without the add-on is not allowed
    """

    def __init__(self, lookup, default_lookup, missing, when_none=None):
        self.lookup = lookup
        self.default_lookup = default_lookup
        self.missing = missing
        self.when_none = when_none

    def resolve(self, selected_id=None):
        if selected_id:
            addon = self.lookup(selected_id)
            if addon is None:
                raise self.missing(selected_id)
            return addon

        addon = self.default_lookup()
        if addon is None and self.when_none is not None:
            self.when_none()
        return addon


@dataclass
class PriceBreakdown:
    days: int
    daily_rate: Decimal
    rental_amount: Decimal
    deposit_amount: Decimal
    platform_fee_percentage: Decimal
    platform_fee: Decimal
    total_amount: Decimal
    driver_amount: Decimal = ZERO
    insurance_amount: Decimal = ZERO
    protection_amount: Decimal = ZERO
    promo_discount_amount: Decimal = ZERO
    promo_type: str = ''
    currency: str = 'GHS'
    driver: Any = None
    insurance_plan: Optional[InsurancePlan] = None
    protection_plan: Optional[ProtectionPlan] = None
    promo_code: Any = None
    notes: list = field(default_factory=list)

    def component_sum(self):
        return sum_amounts(
            self.rental_amount,
            self.deposit_amount,
            self.driver_amount,
            self.insurance_amount,
            self.protection_amount,
            self.platform_fee,
        )

    def as_dict(self):
        return {
            'days': self.days,
            'currency': self.currency,
            'daily_rate': str(self.daily_rate),
            'rental_amount': str(self.rental_amount),
            'deposit_amount': str(self.deposit_amount),
            'driver_amount': str(self.driver_amount),
            'insurance_amount': str(self.insurance_amount),
            'protection_amount': str(self.protection_amount),
            'platform_fee_percentage': str(self.platform_fee_percentage),
            'platform_fee': str(self.platform_fee),
            'promo_discount_amount': str(self.promo_discount_amount),
            'promo_type': self.promo_type or None,
            'total_amount': str(self.total_amount),
            'driver_id': self.driver.pk if self.driver is not None else None,
            'insurance_plan_id': self.insurance_plan.pk if self.insurance_plan else None,
            'protection_plan_id': self.protection_plan.pk if self.protection_plan else None,
            'promo_code': self.promo_code.code if self.promo_code is not None else None,
        }


def _mandatory_protection_check():
    if ProtectionPlan.objects.filter(is_active=True, is_mandatory=True).exists():
        raise PolicyError('A protection plan is required for this booking', code='protection_required')


def _no_driver():
    raise PolicyError('No drivers are available at the moment', code='no_available_driver')


class PricingEngine:

    def __init__(self, config=None, promo_service=None, driver_directory=None):
        self.config = config or ConfigService()
        self.promo_service = promo_service or PromoCodeService()
        self.driver_directory = driver_directory or DriverDirectory()

        self.driver_resolver = AddonResolver(
            lookup=lambda driver_id: self.driver_directory.find_available_verified_driver(driver_id),
            default_lookup=lambda: self.driver_directory.find_available_verified_driver(),
            missing=lambda driver_id: PolicyError(
                'Selected driver is not available', code='driver_unavailable', driver_id=driver_id),
            when_none=_no_driver,
        )
        self.insurance_resolver = AddonResolver(
            lookup=lambda plan_id: InsurancePlan.objects.filter(pk=plan_id, active=True).first(),
            default_lookup=lambda: InsurancePlan.objects.filter(active=True, is_default=True).order_by('pk').first(),
            missing=lambda plan_id: NotFoundError(
                'Insurance plan not found', code='insurance_plan_not_found', insurance_plan_id=plan_id),
        )
        self.protection_resolver = AddonResolver(
            lookup=lambda plan_id: ProtectionPlan.objects.filter(pk=plan_id, is_active=True).first(),
            default_lookup=lambda: ProtectionPlan.objects.filter(is_active=True, is_default=True).order_by('pk').first(),
            missing=lambda plan_id: NotFoundError(
                'Protection plan not found', code='protection_plan_not_found', protection_plan_id=plan_id),
            when_none=_mandatory_protection_check,
        )

    def platform_fee_percentage(self):
        return self.config.get_decimal(PLATFORM_FEE_PERCENTAGE)

    def driver_daily_rate(self, driver_profile):
        if driver_profile is not None and driver_profile.daily_rate is not None:
            return to_decimal(driver_profile.daily_rate)
        return self.config.get_decimal(DEFAULT_DRIVER_DAILY_RATE)

    def _daily_rate(self, vehicle):
        rate = vehicle.resolved_daily_rate()
        if rate is None:
            raise PolicyError('Vehicle has no category or daily rate configured', code='vehicle_not_priced')
        return to_decimal(rate)

    def _deposit(self, vehicle):
        if vehicle.category is None:
            return ZERO
        return quantize(vehicle.category.default_deposit_amount)

    def _build(self, days, daily_rate, deposit, driver_amount, insurance_amount, protection_amount):
        rental = multiply(daily_rate, days)
        percentage = self.platform_fee_percentage()
        platform_fee = percentage_of(rental + driver_amount, percentage)
        breakdown = PriceBreakdown(
            days=days,
            daily_rate=quantize(daily_rate),
            rental_amount=rental,
            deposit_amount=deposit,
            driver_amount=driver_amount,
            insurance_amount=insurance_amount,
            protection_amount=protection_amount,
            platform_fee_percentage=percentage,
            platform_fee=platform_fee,
            total_amount=ZERO,
            currency=currency(),
        )
        breakdown.total_amount = breakdown.component_sum()
        return breakdown

    def quote(self, vehicle, pickup, return_, with_driver=False, driver_id=None,
              insurance_plan_id=None, protection_plan_id=None, promo_code=None, renter=None):
        if return_ <= pickup:
            raise ValidationError('Return time must be after pickup time', code='invalid_interval')

        days = day_count(pickup, return_)
        daily_rate = self._daily_rate(vehicle)

        driver = None
        driver_amount = ZERO
        if with_driver:
            driver = self.driver_resolver.resolve(driver_id)
            driver_amount = multiply(self.driver_daily_rate(driver), days)

        insurance_plan = self.insurance_resolver.resolve(insurance_plan_id)
        insurance_amount = multiply(insurance_plan.daily_price, days) if insurance_plan else ZERO

        protection_plan = self.protection_resolver.resolve(protection_plan_id)
        protection_amount = protection_price(protection_plan, days) if protection_plan else ZERO

        breakdown = self._build(days, daily_rate, self._deposit(vehicle), driver_amount,
                                insurance_amount, protection_amount)
        breakdown.driver = driver
        breakdown.insurance_plan = insurance_plan
        breakdown.protection_plan = protection_plan

        if promo_code:
            self._apply_promo(breakdown, promo_code, vehicle, renter)
        return breakdown

    def _apply_promo(self, breakdown, promo_code, vehicle, renter):
        try:
            validation = self.promo_service.validate(
                promo_code,
                renter.pk if renter is not None else None,
                breakdown.total_amount,
                vehicle_id=vehicle.pk,
                category_id=vehicle.category_id,
                city_id=vehicle.city_id,
                days=breakdown.days,
            )
        except DomainError:
            raise
        except Exception as exc:
            logger.exception("Promo code %s could not be validated", promo_code)
            raise PolicyError(f'Failed to apply promo code: {exc}', code='promo_code_error') from exc

        if not validation.is_valid:
            raise PolicyError(f'Promo code error: {validation.error_message}', code='invalid_promo_code')

        breakdown.promo_code = validation.promo_code
        breakdown.promo_type = validation.promo_type

        if validation.promo_type == 'owner_vehicle_discount':
            # The owner absorbs the discount: rental shrinks and the fee follows it
            discounted = max(ZERO, breakdown.rental_amount - validation.discount_amount)
            breakdown.promo_discount_amount = quantize(breakdown.rental_amount - discounted)
            breakdown.rental_amount = quantize(discounted)
            breakdown.platform_fee = percentage_of(
                breakdown.rental_amount + breakdown.driver_amount, breakdown.platform_fee_percentage)
            breakdown.total_amount = breakdown.component_sum()
        else:
            final_amount = quantize(validation.final_amount)
            breakdown.promo_discount_amount = quantize(breakdown.total_amount - final_amount)
            breakdown.total_amount = final_amount

    def reprice(self, booking, pickup, return_):
        """Price a new window for an existing booking with its stored driver and plans"""
        if return_ <= pickup:
            raise ValidationError('Return time must be after pickup time', code='invalid_interval')

        days = day_count(pickup, return_)
        daily_rate = self._daily_rate(booking.vehicle)

        driver_amount = ZERO
        if booking.with_driver:
            profile = self.driver_directory.get_driver(booking.driver_id) if booking.driver_id else None
            driver_amount = multiply(self.driver_daily_rate(profile), days)

        insurance_amount = ZERO
        if booking.insurance_plan is not None and booking.insurance_plan.active:
            insurance_amount = multiply(booking.insurance_plan.daily_price, days)

        protection_amount = ZERO
        if booking.protection_plan is not None and booking.protection_plan.is_active:
            protection_amount = protection_price(booking.protection_plan, days)

        breakdown = self._build(days, daily_rate, quantize(booking.deposit_amount), driver_amount,
                                insurance_amount, protection_amount)
        breakdown.insurance_plan = booking.insurance_plan
        breakdown.protection_plan = booking.protection_plan
        return breakdown
