import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.utils import timezone

from coreapp.config import ConfigService, DEPOSIT_REFUND_DUE_DAYS
from coreapp.exceptions import ConflictError, NotFoundError, ValidationError
from coreapp.money import ZERO, quantize
from notificationapp.scheduler import NotificationScheduler

from .models import Booking, DepositRefund

logger = logging.getLogger(__name__)

REFUND_STATUSES = [choice[0] for choice in DepositRefund.STATUS_CHOICES]
FINAL_REFUND_STATUSES = ('completed', 'cancelled')


def create_deposit_refund(booking, amount=None, notes='', now=None, config=None):
    """
    The only way a DepositRefund is created. Returns the booking's refund,
    creating it when none exists, or None when there is nothing to refund.
    """
    now = now or timezone.now()
    config = config or ConfigService()

    with transaction.atomic():
        # Serialises concurrent creators on the booking row
        Booking.objects.select_for_update().filter(pk=booking.pk).first()

        existing = DepositRefund.objects.filter(booking_id=booking.pk).first()
        if existing is not None:
            return existing

        amount = quantize(booking.deposit_amount if amount is None else amount)
        if amount <= ZERO:
            return None

        try:
            with transaction.atomic():
                refund = DepositRefund.objects.create(
                    booking=booking,
                    amount=amount,
                    currency=booking.currency,
                    payment_method=booking.payment_method,
                    due_date=now + timedelta(days=config.get_int(DEPOSIT_REFUND_DUE_DAYS)),
                    status='pending',
                    reference=f"REF-{booking.booking_reference}-{now:%Y%m%d%H%M%S}",
                    notes=notes,
                )
        except IntegrityError:
            return DepositRefund.objects.get(booking_id=booking.pk)

    logger.info("Deposit refund %s created for booking %s: %s", refund.reference, booking.booking_reference, amount)
    return refund


def update_deposit_refund_status(refund, status, external_refund_id='', error_message='',
                                 now=None, notifications=None):
    if status not in REFUND_STATUSES:
        raise ValidationError(f'Invalid deposit refund status: {status}', code='invalid_status')

    now = now or timezone.now()
    notifications = notifications or NotificationScheduler()

    with transaction.atomic():
        try:
            refund = DepositRefund.objects.select_for_update().get(pk=refund.pk)
        except DepositRefund.DoesNotExist:
            raise NotFoundError('Deposit refund not found')

        if refund.status == status and status in FINAL_REFUND_STATUSES:
            logger.info("Deposit refund %s already %s, ignoring replay", refund.reference, status)
            return refund

        if refund.status in FINAL_REFUND_STATUSES:
            raise ConflictError(f'Deposit refund is already {refund.status}', code='refund_finalised')

        refund.status = status
        if external_refund_id:
            refund.external_refund_id = external_refund_id
        if status == 'processing':
            refund.processed_at = now
        elif status == 'completed':
            refund.completed_at = now
            refund.error_message = ''
        elif status == 'failed':
            refund.error_message = error_message
        refund.save()

    if status == 'completed':
        booking = refund.booking
        notifications.schedule_job(
            booking.renter,
            'deposit_refund_processed',
            booking=booking,
            subject='Your deposit refund has been processed',
            metadata={'amount': str(refund.amount), 'reference': refund.reference},
        )
    logger.info("Deposit refund %s moved to %s", refund.reference, status)
    return refund
