"""
Trip check-in / check-out and settlement of the actual trip.

On check-out the booked charges are re-priced for the days actually used and
any distance above the allowance is charged. The maths lives in the pure
functions `prorate` and `compute_mileage_overage`; `TripService` applies
their results to the booking.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from coreapp import config as config_keys
from coreapp.config import ConfigService
from coreapp.exceptions import ConflictError, ValidationError
from coreapp.money import ZERO, clamp, multiply, percentage_of, quantize, sum_amounts, to_decimal
from notificationapp.scheduler import NotificationScheduler

from .deposits import create_deposit_refund
from .lifecycle import COMPLETED, ONGOING, ensure_owner_or_admin, ensure_transition, lock_booking
from .models import BookingCharge
from .pricing import day_count
from .transactions import record_transaction

logger = logging.getLogger(__name__)

# Adjustments smaller than this are treated as rounding noise
ADJUSTMENT_THRESHOLD = Decimal('0.01')

MINIMUM_TRIP = timedelta(hours=1)


@dataclass
class ProrationResult:
    booked_days: int
    actual_days: int
    rental_amount: Decimal
    driver_amount: Decimal
    protection_amount: Decimal
    insurance_amount: Decimal
    deposit_amount: Decimal
    platform_fee: Decimal
    original_total: Decimal
    prorated_total: Decimal

    @property
    def adjustment(self):
        return quantize(self.original_total - self.prorated_total)


@dataclass
class MileageResult:
    actual_km: int
    allowed_km: int
    overage_km: int
    rate: Decimal
    charge: Decimal


def prorate(booked_days, actual_days, rental_amount, driver_amount, protection_amount,
            insurance_amount, deposit_amount, platform_fee, original_total,
            protection_bounds=None, carried_discount=ZERO):
    """
    Scale rental, driver, protection and platform fee from booked_days to
    actual_days. Insurance and deposit are fixed per booking.
    """
    booked_days = max(1, int(booked_days))
    actual_days = max(1, int(actual_days))

    def scale(amount):
        return quantize(to_decimal(amount) / booked_days * actual_days)

    protection = scale(protection_amount)
    if protection_bounds is not None:
        protection = quantize(clamp(protection, *protection_bounds))

    rental = scale(rental_amount)
    driver = scale(driver_amount)
    fee = scale(platform_fee)
    insurance = quantize(insurance_amount)
    deposit = quantize(deposit_amount)

    total = sum_amounts(rental, deposit, driver, insurance, protection, fee) - to_decimal(carried_discount)
    return ProrationResult(
        booked_days=booked_days,
        actual_days=actual_days,
        rental_amount=rental,
        driver_amount=driver,
        protection_amount=protection,
        insurance_amount=insurance,
        deposit_amount=deposit,
        platform_fee=fee,
        original_total=quantize(original_total),
        prorated_total=max(ZERO, quantize(total)),
    )


def compute_mileage_overage(pre_odometer, post_odometer, allowance_per_day, actual_days, rate, enabled=True):
    actual_km = max(0, int(post_odometer) - int(pre_odometer))
    allowed_km = max(0, int(allowance_per_day)) * max(1, int(actual_days))
    rate = to_decimal(rate)

    overage_km = actual_km - allowed_km if enabled and actual_km > allowed_km else 0
    return MileageResult(
        actual_km=actual_km,
        allowed_km=allowed_km,
        overage_km=overage_km,
        rate=rate,
        charge=multiply(overage_km, rate) if overage_km else ZERO,
    )


def _parse_odometer(value):
    try:
        odometer = int(value)
    except (TypeError, ValueError):
        raise ValidationError('Odometer reading must be a whole number', code='invalid_odometer')
    if odometer <= 0:
        raise ValidationError('Odometer reading must be greater than 0', code='invalid_odometer')
    return odometer


def _whole_number(value):
    """Owner supplied inclusion values may be free text; unparseable ones count as missing"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric mileage allowance %r", value)
        return None


def _parse_fuel_level(value):
    fuel = to_decimal(value, default=None)
    if fuel is None or not fuel.is_finite() or fuel < 0 or fuel > 1:
        raise ValidationError('Fuel level must be between 0 and 1.0', code='invalid_fuel_level')
    return quantize(fuel)


class TripService:

    def __init__(self, config=None, notifications=None):
        self.config = config or ConfigService()
        self.notifications = notifications or NotificationScheduler()

    def adjustment_threshold(self):
        return self.config.get_decimal(config_keys.ADJUSTMENT_THRESHOLD, ADJUSTMENT_THRESHOLD)

    def mileage_terms(self, vehicle):
        """(enabled, allowance per day, rate per km) for a vehicle"""
        allowance = _whole_number(vehicle.inclusion('mileageAllowancePerDay'))
        if allowance is None:
            allowance = vehicle.mileage_allowance_per_day
        if allowance is None:
            allowance = self.config.get_int(config_keys.DEFAULT_MILEAGE_ALLOWANCE)

        rate = to_decimal(vehicle.inclusion('extraKmRate'), default=None)
        if rate is None or not rate.is_finite():
            rate = vehicle.extra_km_rate
        if rate is None:
            rate = self.config.get_decimal(config_keys.DEFAULT_EXTRA_KM_RATE)

        enabled = vehicle.mileage_charging_enabled and self.config.get_bool(config_keys.MILEAGE_CHARGING_ENABLED)
        return enabled, int(allowance), to_decimal(rate)

    def start_trip(self, booking, actor, odometer, fuel_level, notes='', photo_urls=None, now=None):
        now = now or timezone.now()
        odometer = _parse_odometer(odometer)
        fuel_level = _parse_fuel_level(fuel_level)

        with transaction.atomic():
            booking = lock_booking(booking.pk)
            ensure_owner_or_admin(actor, booking)

            if booking.pre_trip_recorded_at is not None:
                raise ConflictError('Trip has already been started', code='trip_already_started')
            ensure_transition(booking, ONGOING)

            if booking.booked_days is None:
                booking.booked_days = day_count(booking.pickup_datetime, booking.return_datetime)

            booking.pre_trip_odometer = odometer
            booking.pre_trip_fuel_level = fuel_level
            booking.pre_trip_notes = notes or ''
            booking.pre_trip_photos = list(photo_urls or [])
            booking.pre_trip_recorded_at = now
            booking.pre_trip_recorded_by = actor
            booking.actual_pickup_datetime = now
            booking.pickup_datetime = now
            booking.status = ONGOING
            booking.save()

        logger.info("Trip started for booking %s at odometer %s", booking.booking_reference, odometer)
        self.notifications.schedule_job(
            booking.renter,
            'trip_started',
            booking=booking,
            metadata={'booking_reference': booking.booking_reference, 'odometer': odometer},
        )
        return booking

    def complete_trip(self, booking, actor, odometer, fuel_level, notes='', photo_urls=None, now=None):
        now = now or timezone.now()
        odometer = _parse_odometer(odometer)
        fuel_level = _parse_fuel_level(fuel_level)

        with transaction.atomic():
            booking = lock_booking(booking.pk)
            ensure_owner_or_admin(actor, booking)

            if booking.post_trip_recorded_at is not None or booking.status == COMPLETED:
                raise ConflictError('Trip has already been completed', code='already_completed')
            ensure_transition(booking, COMPLETED)
            if booking.pre_trip_recorded_at is None or booking.pre_trip_odometer is None:
                raise ConflictError('Trip must be started before it can be completed', code='trip_not_started')
            if odometer < booking.pre_trip_odometer:
                raise ValidationError(
                    f'Return odometer ({odometer}) cannot be less than pickup odometer ({booking.pre_trip_odometer})',
                    code='invalid_odometer',
                )

            actual_pickup = booking.actual_pickup_datetime or booking.pickup_datetime
            returned_at = now if now > actual_pickup else actual_pickup + MINIMUM_TRIP

            booked_days = booking.booked_days or day_count(booking.pickup_datetime, booking.return_datetime)
            actual_days = day_count(actual_pickup, returned_at)

            adjustment_txn = self._settle_proration(booking, booked_days, actual_days)
            charge, shortfall_txn, deducted = self._settle_mileage(booking, odometer, actual_days, now)

            booking.post_trip_odometer = odometer
            booking.post_trip_fuel_level = fuel_level
            booking.post_trip_notes = notes or ''
            booking.post_trip_photos = list(photo_urls or [])
            booking.post_trip_recorded_at = now
            booking.post_trip_recorded_by = actor
            booking.return_datetime = returned_at
            booking.status = COMPLETED
            booking.save()

            refund = None
            if booking.deposit_amount > ZERO:
                refund_notes = 'Auto-created deposit refund after trip completion'
                if deducted > ZERO:
                    refund_notes += f'. Mileage overage of {deducted} {booking.currency} deducted from deposit'
                refund = create_deposit_refund(booking, notes=refund_notes, now=now, config=self.config)

        logger.info(
            "Trip completed for booking %s: %s of %s days, total %s",
            booking.booking_reference, actual_days, booked_days, booking.total_amount
        )
        self._notify_completion(booking, charge, refund, adjustment_txn, shortfall_txn)
        return booking

    def _settle_proration(self, booking, booked_days, actual_days):
        plan = booking.protection_plan
        bounds = (plan.min_fee, plan.max_fee) if plan is not None else None
        result = prorate(
            booked_days,
            actual_days,
            booking.rental_amount,
            booking.driver_amount,
            booking.protection_amount,
            booking.insurance_amount,
            booking.deposit_amount,
            booking.platform_fee,
            booking.total_amount,
            protection_bounds=bounds,
            carried_discount=booking.total_level_discount(),
        )

        threshold = self.adjustment_threshold()
        adjustment = result.adjustment
        if -threshold <= adjustment <= threshold:
            return None

        booking.rental_amount = result.rental_amount
        booking.driver_amount = result.driver_amount
        booking.protection_amount = result.protection_amount
        booking.platform_fee = result.platform_fee
        booking.total_amount = result.prorated_total

        metadata = {
            'reason': 'early_return' if adjustment > ZERO else 'late_return',
            'booked_days': result.booked_days,
            'actual_days': result.actual_days,
            'original_total': str(result.original_total),
            'prorated_total': str(result.prorated_total),
        }
        if adjustment > ZERO:
            booking.payment_status = 'partial_refund'
            txn = record_transaction(booking, 'refund', adjustment, metadata)
        else:
            txn = record_transaction(booking, 'payment', -adjustment, metadata)
        logger.info("Booking %s %s adjustment %s", booking.booking_reference, metadata['reason'], adjustment)
        return txn

    def _settle_mileage(self, booking, odometer, actual_days, now):
        """Returns (charge, shortfall transaction, amount deducted from deposit)"""
        enabled, allowance, rate = self.mileage_terms(booking.vehicle)
        result = compute_mileage_overage(booking.pre_trip_odometer, odometer, allowance, actual_days, rate, enabled)
        if result.charge <= ZERO:
            return None, None, ZERO

        charge_fee = percentage_of(result.charge, self.config.get_decimal(config_keys.PLATFORM_FEE_PERCENTAGE))
        charge = BookingCharge.objects.create(
            booking=booking,
            charge_type='mileage_overage',
            amount=result.charge,
            currency=booking.currency,
            label='Mileage overage',
            notes=(
                f'Driven: {result.actual_km} km, Included: {result.allowed_km} km, '
                f'Overage: {result.overage_km} km @ {result.rate}/km'
            ),
            status='approved',
        )

        booking.rental_amount = quantize(booking.rental_amount + result.charge)
        booking.platform_fee = quantize(booking.platform_fee + charge_fee)
        booking.total_amount = quantize(booking.total_amount + result.charge + charge_fee)

        deducted = min(quantize(booking.deposit_amount), result.charge)
        booking.deposit_amount = quantize(booking.deposit_amount - deducted)
        shortfall = quantize(result.charge - deducted)

        txn = None
        if shortfall > ZERO:
            txn = record_transaction(booking, 'payment', shortfall, {
                'reason': 'mileage_overage',
                'charge_id': charge.pk,
                'actual_km': result.actual_km,
                'allowed_km': result.allowed_km,
                'overage_km': result.overage_km,
                'rate_per_km': str(result.rate),
                'deducted_from_deposit': str(deducted),
            })
            charge.payment_transaction = txn
        else:
            charge.status = 'paid'
            charge.settled_at = now
        charge.save()

        logger.info(
            "Booking %s mileage overage %s km charged %s (%s from deposit)",
            booking.booking_reference, result.overage_km, result.charge, deducted
        )
        return charge, txn, deducted

    def _notify_completion(self, booking, charge, refund, adjustment_txn, shortfall_txn):
        self.notifications.cancel_pending_jobs(booking, ['return_reminder'])

        metadata = {'booking_reference': booking.booking_reference, 'total': str(booking.total_amount)}
        self.notifications.schedule_job(booking.renter, 'trip_completed', booking=booking, metadata=metadata)
        self.notifications.schedule_job(booking.owner, 'trip_completed', booking=booking, metadata=metadata)

        if charge is not None:
            self.notifications.schedule_job(
                booking.renter,
                'mileage_charge_applied',
                booking=booking,
                metadata={
                    'amount': str(charge.amount),
                    'outstanding': str(shortfall_txn.amount) if shortfall_txn else '0.00',
                },
            )
        if adjustment_txn is not None:
            self.notifications.schedule_job(
                booking.renter,
                f'{adjustment_txn.metadata["reason"]}_adjustment',
                booking=booking,
                metadata={'amount': str(adjustment_txn.amount), 'type': adjustment_txn.transaction_type},
            )
        if refund is not None:
            self.notifications.schedule_job(
                booking.renter,
                'deposit_refund_created',
                booking=booking,
                metadata={'amount': str(refund.amount), 'due_date': refund.due_date.isoformat()},
            )
