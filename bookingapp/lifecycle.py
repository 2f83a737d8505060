"""
Booking status lifecycle.

    pending_payment -> confirmed -> ongoing -> completed
    any non-terminal -> cancelled | no_show

Every transition re-reads the booking under a row lock and checks the actor
and the current status before writing anything.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from django.db import DatabaseError, transaction
from django.utils import timezone

from coreapp.config import ConfigService, UNPAID_TIMEOUT_HOURS
from coreapp.exceptions import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationError
from coreapp.money import ZERO, quantize
from notificationapp.scheduler import NotificationScheduler
from promoapp.services import PromoCodeService
from vehicleapp.models import Vehicle

from .availability import AvailabilityChecker
from .deposits import create_deposit_refund
from .models import Booking, PaymentTransaction
from .pricing import PricingEngine
from .transactions import record_transaction

logger = logging.getLogger(__name__)

PENDING_PAYMENT = 'pending_payment'
CONFIRMED = 'confirmed'
ONGOING = 'ongoing'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
NO_SHOW = 'no_show'

VALID_STATUSES = [choice[0] for choice in Booking.STATUS_CHOICES]

TRANSITIONS = {
    PENDING_PAYMENT: (CONFIRMED, CANCELLED, NO_SHOW),
    CONFIRMED: (ONGOING, CANCELLED, NO_SHOW),
    ONGOING: (COMPLETED, CANCELLED, NO_SHOW),
    COMPLETED: (),
    CANCELLED: (),
    NO_SHOW: (),
}

REMINDER_TEMPLATES = ('pickup_reminder', 'return_reminder')
REMINDER_LEAD = timedelta(days=1)


def generate_booking_reference(now=None):
    now = now or timezone.now()
    return f"RV-{now.year}-{uuid.uuid4().hex[:6].upper()}"


def lock_booking(booking_id):
    try:
        return Booking.objects.select_for_update().get(pk=booking_id)
    except Booking.DoesNotExist:
        raise NotFoundError('Booking not found', code='booking_not_found')


def ensure_transition(booking, target):
    if target not in TRANSITIONS.get(booking.status, ()):
        raise ConflictError(
            f'Cannot move a {booking.status} booking to {target}',
            code='invalid_transition',
            status=booking.status,
        )


def is_owner_or_admin(actor, booking):
    return actor.is_admin or booking.owner_id == actor.pk


def is_renter_or_admin(actor, booking):
    return actor.is_admin or booking.renter_id == actor.pk


def is_booking_payment(txn):
    return txn.transaction_type == 'payment' and (txn.metadata or {}).get('reason') == 'booking_payment'


def ensure_owner_or_admin(actor, booking):
    if not is_owner_or_admin(actor, booking):
        raise ForbiddenError('Only the vehicle owner or an admin can do this')


def ensure_renter_or_admin(actor, booking):
    if not is_renter_or_admin(actor, booking):
        raise ForbiddenError('Only the renter or an admin can do this')


@dataclass
class ExtensionQuote:
    booking: Booking
    new_return_datetime: object
    old_total: Decimal
    new_total: Decimal
    delta_amount: Decimal
    days: int

    def as_dict(self):
        return {
            'booking_id': self.booking.pk,
            'new_return_datetime': self.new_return_datetime.isoformat(),
            'days': self.days,
            'old_total': str(self.old_total),
            'new_total': str(self.new_total),
            'delta_amount': str(self.delta_amount),
        }


class BookingService:

    def __init__(self, config=None, pricing=None, availability=None, notifications=None, promo_service=None):
        self.config = config or ConfigService()
        self.promo_service = promo_service or PromoCodeService()
        self.pricing = pricing or PricingEngine(self.config, promo_service=self.promo_service)
        self.availability = availability or AvailabilityChecker(self.config)
        self.notifications = notifications or NotificationScheduler()

    def create_booking(self, renter, vehicle, pickup, return_, with_driver=False, driver_id=None,
                       insurance_plan_id=None, protection_plan_id=None, promo_code=None,
                       payment_method='momo', pickup_location=None, return_location=None, now=None):
        now = now or timezone.now()
        if pickup is None or return_ is None:
            raise ValidationError('pickup_datetime and return_datetime are required', code='invalid_interval')
        if return_ <= pickup:
            raise ValidationError('Return time must be after pickup time', code='invalid_interval')
        if pickup < now:
            raise ValidationError('Pickup time must be in the future', code='invalid_interval')

        with transaction.atomic():
            try:
                vehicle = Vehicle.objects.select_for_update().get(pk=vehicle.pk)
            except Vehicle.DoesNotExist:
                raise NotFoundError('Vehicle not found', code='vehicle_not_found')

            availability = self.availability.check(vehicle, pickup, return_)
            if not availability.available:
                raise ConflictError(
                    availability.reason,
                    code='vehicle_unavailable',
                    **({'conflict': availability.conflict_window()} if availability.conflict else {})
                )

            quote = self.pricing.quote(
                vehicle, pickup, return_,
                with_driver=with_driver,
                driver_id=driver_id,
                insurance_plan_id=insurance_plan_id,
                protection_plan_id=protection_plan_id,
                promo_code=promo_code,
                renter=renter,
            )

            booking = Booking.objects.create(
                booking_reference=generate_booking_reference(now),
                renter=renter,
                owner_id=vehicle.owner_id,
                vehicle=vehicle,
                pickup_datetime=pickup,
                return_datetime=return_,
                booked_days=quote.days,
                pickup_location=pickup_location,
                return_location=return_location,
                with_driver=with_driver,
                driver_id=quote.driver.pk if quote.driver is not None else None,
                currency=quote.currency,
                rental_amount=quote.rental_amount,
                deposit_amount=quote.deposit_amount,
                driver_amount=quote.driver_amount,
                insurance_amount=quote.insurance_amount,
                protection_amount=quote.protection_amount,
                platform_fee=quote.platform_fee,
                promo_discount_amount=quote.promo_discount_amount,
                total_amount=quote.total_amount,
                payment_method=payment_method or 'momo',
                insurance_plan=quote.insurance_plan,
                protection_plan=quote.protection_plan,
                protection_snapshot=quote.protection_plan.snapshot() if quote.protection_plan else None,
                promo_code=quote.promo_code,
                status=PENDING_PAYMENT,
                payment_status='unpaid',
            )

        logger.info(
            "Booking %s created for vehicle %s by renter %s, total %s %s",
            booking.booking_reference, vehicle.pk, renter.pk, booking.total_amount, booking.currency
        )

        if quote.promo_code is not None:
            self._record_promo_usage(booking, quote, renter)

        self.notifications.schedule_job(
            booking.owner,
            'booking_requested',
            booking=booking,
            subject=f'New booking request {booking.booking_reference}',
            metadata={'booking_reference': booking.booking_reference},
        )
        return booking

    def _record_promo_usage(self, booking, quote, renter):
        try:
            with transaction.atomic():
                self.promo_service.apply(
                    quote.promo_code.code,
                    renter.pk,
                    booking.pk,
                    quote.total_amount + quote.promo_discount_amount,
                    renter.role,
                )
        except (DomainError, DatabaseError):
            logger.exception("Failed to record promo usage for booking %s", booking.booking_reference)

    def initiate_payment(self, booking, actor):
        """Create the pending payment transaction the provider callback will settle"""
        with transaction.atomic():
            booking = lock_booking(booking.pk)
            if booking.renter_id != actor.pk:
                raise ForbiddenError('Only the renter can pay for this booking')
            if booking.status != PENDING_PAYMENT or booking.payment_status != 'unpaid':
                raise ConflictError('Booking is not awaiting payment', code='not_awaiting_payment')

            existing = booking.transactions.filter(transaction_type='payment', status='pending').first()
            if existing is not None:
                return existing
            return record_transaction(
                booking, 'payment', booking.total_amount,
                metadata={'reason': 'booking_payment', 'booking_reference': booking.booking_reference},
            )

    def confirm_payment(self, payment_transaction, external_id='', now=None):
        """Payment verified by the provider. Replays of a completed transaction are no-ops."""
        now = now or timezone.now()
        confirmed = None

        with transaction.atomic():
            try:
                txn = PaymentTransaction.objects.select_for_update().get(pk=payment_transaction.pk)
            except PaymentTransaction.DoesNotExist:
                raise NotFoundError('Transaction not found', code='transaction_not_found')

            if txn.status == 'completed':
                logger.info("Transaction %s already completed, ignoring replay", txn.reference)
                return txn
            if txn.status != 'pending':
                raise ConflictError(f'Transaction is {txn.status}', code='transaction_not_pending')

            # Only the booking payment confirms a booking; post-trip charges leave its status alone
            booking = None
            if txn.booking_id and is_booking_payment(txn):
                booking = lock_booking(txn.booking_id)
                if booking.status != PENDING_PAYMENT:
                    raise ConflictError(
                        f'Booking is {booking.status}, payment cannot be applied',
                        code='not_awaiting_payment',
                        status=booking.status,
                    )

            txn.status = 'completed'
            txn.completed_at = now
            if external_id:
                txn.external_transaction_id = external_id
            txn.save()

            if booking is not None:
                booking.payment_status = 'paid'
                booking.status = CONFIRMED
                booking.save(update_fields=['payment_status', 'status', 'updated_at'])
                confirmed = booking

        logger.info("Transaction %s completed for %s", txn.reference, txn.amount)
        if confirmed is not None:
            self.schedule_reminders(confirmed, now)
        return txn

    def fail_payment(self, payment_transaction, error_message='', now=None):
        with transaction.atomic():
            try:
                txn = PaymentTransaction.objects.select_for_update().get(pk=payment_transaction.pk)
            except PaymentTransaction.DoesNotExist:
                raise NotFoundError('Transaction not found', code='transaction_not_found')

            if txn.status == 'failed':
                return txn
            if txn.status != 'pending':
                raise ConflictError(f'Transaction is {txn.status}', code='transaction_not_pending')

            txn.status = 'failed'
            txn.error_message = error_message[:512]
            txn.save(update_fields=['status', 'error_message'])

        logger.warning("Transaction %s failed: %s", txn.reference, error_message)
        return txn

    def schedule_reminders(self, booking, now=None):
        now = now or timezone.now()
        jobs = []
        for template, moment in (('pickup_reminder', booking.pickup_datetime),
                                 ('return_reminder', booking.return_datetime)):
            scheduled_at = moment - REMINDER_LEAD
            if scheduled_at <= now:
                continue
            job = self.notifications.schedule_job(
                booking.renter,
                template,
                scheduled_at=scheduled_at,
                booking=booking,
                metadata={'booking_reference': booking.booking_reference, 'at': moment.isoformat()},
            )
            if job is not None:
                jobs.append(job)
        return jobs

    def update_status(self, booking, actor, status, now=None):
        """Owner/admin override. Moving to completed creates the deposit refund when missing."""
        if status not in VALID_STATUSES:
            raise ValidationError(f'Invalid status: {status}', code='invalid_status', valid=VALID_STATUSES)
        now = now or timezone.now()

        with transaction.atomic():
            booking = lock_booking(booking.pk)
            ensure_owner_or_admin(actor, booking)

            previous = booking.status
            booking.status = status
            booking.save(update_fields=['status', 'updated_at'])

            if status == COMPLETED and booking.deposit_amount > ZERO:
                create_deposit_refund(
                    booking,
                    notes='Auto-created deposit refund on status change to completed',
                    now=now,
                    config=self.config,
                )

        logger.info("Booking %s status %s -> %s by user %s", booking.booking_reference, previous, status, actor.pk)
        return booking

    def quote_extension(self, booking, actor, new_return):
        if new_return is None:
            raise ValidationError('new_return_datetime is required', code='invalid_interval')

        try:
            booking = Booking.objects.select_related('vehicle', 'vehicle__category').get(pk=booking.pk)
        except Booking.DoesNotExist:
            raise NotFoundError('Booking not found', code='booking_not_found')

        if booking.renter_id != actor.pk:
            raise ForbiddenError('Only the renter can extend this booking')
        if booking.is_terminal:
            raise ConflictError('Cannot extend this booking', code='invalid_transition', status=booking.status)
        if new_return <= booking.return_datetime:
            raise ValidationError('New return must be after current return', code='invalid_interval')

        availability = self.availability.check(
            booking.vehicle, booking.pickup_datetime, new_return, exclude_booking_id=booking.pk)
        if not availability.available:
            details = {'conflict': availability.conflict_window()} if availability.conflict else {}
            raise ConflictError(
                'Vehicle not available for the requested extension period',
                code='extension_conflict',
                **details
            )

        breakdown = self.pricing.reprice(booking, booking.pickup_datetime, new_return)
        new_total = max(ZERO, quantize(breakdown.total_amount - booking.total_level_discount()))
        delta = max(ZERO, quantize(new_total - booking.total_amount))
        return ExtensionQuote(
            booking=booking,
            new_return_datetime=new_return,
            old_total=booking.total_amount,
            new_total=new_total,
            delta_amount=delta,
            days=breakdown.days,
        )

    def cancel_expired_unpaid_bookings(self, now=None):
        """Cancel pending_payment bookings left unpaid past the timeout"""
        now = now or timezone.now()
        cutoff = now - timedelta(hours=self.config.get_int(UNPAID_TIMEOUT_HOURS))
        candidates = list(
            Booking.objects.filter(
                status=PENDING_PAYMENT,
                payment_status='unpaid',
                created_at__lt=cutoff,
            ).values_list('pk', flat=True)
        )

        cancelled = []
        for booking_id in candidates:
            with transaction.atomic():
                booking = lock_booking(booking_id)
                if booking.status != PENDING_PAYMENT or booking.payment_status != 'unpaid':
                    continue
                booking.status = CANCELLED
                booking.save(update_fields=['status', 'updated_at'])
                booking.transactions.filter(transaction_type='payment', status='pending').update(
                    status='cancelled', error_message='Booking cancelled: payment timeout')

            self.notifications.cancel_pending_jobs(booking, REMINDER_TEMPLATES)
            self.notifications.schedule_job(
                booking.renter,
                'booking_cancelled_unpaid',
                booking=booking,
                subject=f'Booking {booking.booking_reference} was cancelled',
                metadata={'booking_reference': booking.booking_reference, 'reason': 'payment_timeout'},
            )
            logger.info("Booking %s cancelled after payment timeout", booking.booking_reference)
            cancelled.append(booking)
        return cancelled
