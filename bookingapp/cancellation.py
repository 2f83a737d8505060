import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import BooleanField, Case, Q, Value, When
from django.utils import timezone

from coreapp.money import ZERO, percentage_of, quantize, sum_amounts
from notificationapp.scheduler import NotificationScheduler

from .lifecycle import CANCELLED, REMINDER_TEMPLATES, ensure_renter_or_admin, ensure_transition, lock_booking
from .models import PaymentTransaction, RefundPolicy
from .transactions import record_transaction

logger = logging.getLogger(__name__)


@dataclass
class CancellationOutcome:
    booking: object
    refund_amount: Decimal = ZERO
    deposit_refund: Decimal = ZERO
    policy: Optional[RefundPolicy] = None
    transaction: Optional[PaymentTransaction] = None

    @property
    def total_refund(self):
        return sum_amounts(self.refund_amount, self.deposit_refund)

    def as_dict(self):
        return {
            'booking_id': self.booking.pk,
            'status': self.booking.status,
            'payment_status': self.booking.payment_status,
            'refund_amount': str(self.refund_amount),
            'deposit_refund': str(self.deposit_refund),
            'total_refund': str(self.total_refund),
            'policy': self.policy.name if self.policy else None,
            'transaction_reference': self.transaction.reference if self.transaction else None,
        }


def hours_until(moment, now):
    return Decimal((moment - now).total_seconds()) / Decimal(3600)


def select_refund_policy(category_id, hours_until_pickup):
    """
    Best active policy whose threshold has been met: lowest priority first,
    category specific before generic, then the highest threshold.
    """
    scope = Q(category__isnull=True)
    if category_id:
        scope |= Q(category_id=category_id)

    return (
        RefundPolicy.objects
        .filter(scope, is_active=True, hours_before_pickup__lte=math.floor(hours_until_pickup))
        .annotate(is_generic=Case(
            When(category__isnull=True, then=Value(True)),
            default=Value(False),
            output_field=BooleanField(),
        ))
        .order_by('priority', 'is_generic', '-hours_before_pickup', 'pk')
        .first()
    )


def cancel_booking(booking, actor, reason='', now=None, notifications=None):
    now = now or timezone.now()
    notifications = notifications or NotificationScheduler()

    with transaction.atomic():
        booking = lock_booking(booking.pk)
        ensure_renter_or_admin(actor, booking)
        ensure_transition(booking, CANCELLED)

        outcome = CancellationOutcome(booking=booking)
        if booking.payment_status == 'paid':
            hours = hours_until(booking.pickup_datetime, now)
            policy = select_refund_policy(booking.vehicle.category_id, hours)
            outcome.policy = policy

            if policy is not None:
                outcome.refund_amount = percentage_of(booking.rental_amount, policy.refund_percentage)
                outcome.deposit_refund = quantize(booking.deposit_amount) if policy.refund_deposit else ZERO

            total_refund = outcome.total_refund
            if total_refund > ZERO:
                outcome.transaction = record_transaction(booking, 'refund', total_refund, {
                    'reason': 'cancellation',
                    'policy_id': policy.pk,
                    'policy_name': policy.name,
                    'refund_percentage': str(policy.refund_percentage),
                    'hours_before_pickup': str(quantize(hours)),
                    'rental_refund': str(outcome.refund_amount),
                    'deposit_refund': str(outcome.deposit_refund),
                })
                booking.payment_status = 'refunded' if total_refund >= booking.total_amount else 'partial_refund'
            else:
                booking.payment_status = 'non_refundable'
        else:
            booking.transactions.filter(transaction_type='payment', status='pending').update(
                status='cancelled', error_message='Booking cancelled before payment')

        booking.status = CANCELLED
        booking.save(update_fields=['status', 'payment_status', 'updated_at'])

    logger.info(
        "Booking %s cancelled by user %s, refund %s",
        booking.booking_reference, actor.pk, outcome.total_refund
    )

    notifications.cancel_pending_jobs(booking, REMINDER_TEMPLATES)
    metadata = {
        'booking_reference': booking.booking_reference,
        'refund': str(outcome.total_refund),
        'reason': reason,
    }
    notifications.schedule_job(booking.renter, 'booking_cancelled', booking=booking, metadata=metadata)
    notifications.schedule_job(booking.owner, 'booking_cancelled', booking=booking, metadata=metadata)
    return outcome
