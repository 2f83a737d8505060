"""
Owner settlement.

    total_earnings    = sum(rental + driver - platform_fee) over completed bookings
    available_balance = total_earnings - payouts - instant withdrawals

Payouts and withdrawals count while pending, processing or completed. The
balance is recomputed from the source rows on every call.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import DecimalField, ExpressionWrapper, F, Sum
from django.utils import timezone

from bookingapp.models import Booking
from bookingapp.transactions import new_reference
from coreapp.config import ConfigService, INSTANT_WITHDRAWAL_FEE_PERCENTAGE, currency
from coreapp.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from coreapp.money import ZERO, percentage_of, quantize, to_decimal
from notificationapp.scheduler import NotificationScheduler

from .models import InstantWithdrawal, Payout

logger = logging.getLogger(__name__)

OPEN_STATUSES = ('pending', 'processing')
PAYOUT_STATUSES = [choice[0] for choice in Payout.STATUS_CHOICES]

OWNER_EARNING = ExpressionWrapper(
    F('rental_amount') + F('driver_amount') - F('platform_fee'),
    output_field=DecimalField(max_digits=14, decimal_places=2),
)


def _sum(queryset, expression):
    return quantize(to_decimal(queryset.aggregate(total=Sum(expression))['total']))


@dataclass
class OwnerBalance:
    total_earnings: Decimal
    completed_payouts: Decimal
    pending_payouts: Decimal
    completed_withdrawals: Decimal
    pending_withdrawals: Decimal

    @property
    def available_balance(self):
        return quantize(
            self.total_earnings
            - self.completed_payouts
            - self.pending_payouts
            - self.completed_withdrawals
            - self.pending_withdrawals
        )

    def as_dict(self):
        return {
            'currency': currency(),
            'total_earnings': str(self.total_earnings),
            'completed_payouts': str(self.completed_payouts),
            'pending_payouts': str(self.pending_payouts),
            'completed_withdrawals': str(self.completed_withdrawals),
            'pending_withdrawals': str(self.pending_withdrawals),
            'available_balance': str(self.available_balance),
        }


@dataclass
class PeriodEarnings:
    start: object
    end: object
    rental_amount: Decimal = ZERO
    driver_amount: Decimal = ZERO
    platform_fee: Decimal = ZERO
    earnings: Decimal = ZERO
    booking_ids: list = field(default_factory=list)

    def as_dict(self):
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'bookings': len(self.booking_ids),
            'rental_amount': str(self.rental_amount),
            'driver_amount': str(self.driver_amount),
            'platform_fee': str(self.platform_fee),
            'earnings': str(self.earnings),
        }


def owner_balance(owner):
    completed = Booking.objects.filter(owner=owner, status='completed')
    payouts = Payout.objects.filter(owner=owner)
    withdrawals = InstantWithdrawal.objects.filter(owner=owner)

    return OwnerBalance(
        total_earnings=_sum(completed, OWNER_EARNING),
        completed_payouts=_sum(payouts.filter(status='completed'), 'amount'),
        pending_payouts=_sum(payouts.filter(status__in=OPEN_STATUSES), 'amount'),
        completed_withdrawals=_sum(withdrawals.filter(status='completed'), 'amount'),
        pending_withdrawals=_sum(withdrawals.filter(status__in=OPEN_STATUSES), 'amount'),
    )


def period_earnings(owner, start, end):
    """Earnings from bookings completed with a return time in [start, end)"""
    bookings = Booking.objects.filter(
        owner=owner,
        status='completed',
        return_datetime__gte=start,
        return_datetime__lt=end,
    )
    totals = bookings.aggregate(
        rental=Sum('rental_amount'),
        driver=Sum('driver_amount'),
        fee=Sum('platform_fee'),
    )
    rental = quantize(to_decimal(totals['rental']))
    driver = quantize(to_decimal(totals['driver']))
    fee = quantize(to_decimal(totals['fee']))
    return PeriodEarnings(
        start=start,
        end=end,
        rental_amount=rental,
        driver_amount=driver,
        platform_fee=fee,
        earnings=quantize(rental + driver - fee),
        booking_ids=list(bookings.order_by('pk').values_list('pk', flat=True)),
    )


def _transition(model, record, status, external_field, external_id, error_message, now):
    if status not in PAYOUT_STATUSES:
        raise ValidationError(f'Invalid status: {status}', code='invalid_status')

    with transaction.atomic():
        try:
            record = model.objects.select_for_update().get(pk=record.pk)
        except model.DoesNotExist:
            raise NotFoundError(f'{model.__name__} not found')

        if record.status == 'completed':
            if status == 'completed':
                logger.info("%s %s already completed, ignoring replay", model.__name__, record.reference)
                return record
            raise ConflictError(f'{model.__name__} is already completed', code='already_completed')

        record.status = status
        if external_id:
            setattr(record, external_field, external_id)
        if status == 'processing':
            record.processed_at = now
        elif status == 'completed':
            record.completed_at = now
            record.error_message = ''
        elif status == 'failed':
            record.error_message = error_message[:512]
        record.save()

    logger.info("%s %s moved to %s", model.__name__, record.reference, status)
    return record


class PayoutService:

    def __init__(self, config=None, notifications=None):
        self.config = config or ConfigService()
        self.notifications = notifications or NotificationScheduler()

    def _lock_owner(self, owner):
        if owner.role != 'owner':
            raise ForbiddenError('Only vehicle owners can request payouts')
        return get_user_model().objects.select_for_update().get(pk=owner.pk)

    def _checked_amount(self, owner, amount):
        balance = owner_balance(owner)
        available = balance.available_balance
        amount = available if amount is None else quantize(amount)
        if amount <= ZERO:
            raise ValidationError('Amount must be greater than zero', code='invalid_amount',
                                  available_balance=str(available))
        if amount > available:
            raise ValidationError('Insufficient balance', code='insufficient_balance',
                                  available_balance=str(available))
        return amount

    def request_payout(self, owner, amount=None, method='momo', details=None, now=None):
        now = now or timezone.now()
        with transaction.atomic():
            owner = self._lock_owner(owner)
            amount = self._checked_amount(owner, amount)
            booking_ids = list(
                Booking.objects.filter(owner=owner, status='completed').order_by('pk').values_list('pk', flat=True)
            )
            payout = Payout.objects.create(
                owner=owner,
                amount=amount,
                currency=currency(),
                method=method or 'momo',
                reference=new_reference('PYT'),
                payout_details=details or {},
                booking_ids=booking_ids,
                period_end=now,
            )

        logger.info("Payout %s of %s requested by owner %s", payout.reference, amount, owner.pk)
        self.notifications.schedule_job(
            owner, 'payout_requested',
            metadata={'reference': payout.reference, 'amount': str(amount)},
        )
        return payout

    def request_instant_withdrawal(self, owner, amount, method='momo', details=None):
        if amount is None:
            raise ValidationError('amount is required', code='invalid_amount')

        with transaction.atomic():
            owner = self._lock_owner(owner)
            amount = self._checked_amount(owner, amount)
            fee_percentage = self.config.get_decimal(INSTANT_WITHDRAWAL_FEE_PERCENTAGE)
            fee = percentage_of(amount, fee_percentage)
            withdrawal = InstantWithdrawal.objects.create(
                owner=owner,
                amount=amount,
                fee_percentage=fee_percentage,
                fee_amount=fee,
                net_amount=quantize(amount - fee),
                currency=currency(),
                method=method or 'momo',
                reference=new_reference('WDL'),
                payout_details=details or {},
            )

        logger.info(
            "Instant withdrawal %s of %s (fee %s) requested by owner %s",
            withdrawal.reference, amount, fee, owner.pk
        )
        self.notifications.schedule_job(
            owner, 'instant_withdrawal_requested',
            metadata={'reference': withdrawal.reference, 'net_amount': str(withdrawal.net_amount)},
        )
        return withdrawal

    def update_payout_status(self, payout, status, external_id='', error_message='', now=None):
        return _transition(Payout, payout, status, 'external_payout_id', external_id,
                           error_message, now or timezone.now())

    def update_withdrawal_status(self, withdrawal, status, external_id='', error_message='', now=None):
        return _transition(InstantWithdrawal, withdrawal, status, 'external_transfer_id', external_id,
                           error_message, now or timezone.now())
