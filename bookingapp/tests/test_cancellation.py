from datetime import timedelta
from decimal import Decimal

import pytest

from bookingapp.cancellation import cancel_booking, select_refund_policy
from bookingapp.lifecycle import BookingService
from bookingapp.models import PaymentTransaction, RefundPolicy
from coreapp.exceptions import ConflictError, ForbiddenError
from notificationapp.models import NotificationJob


@pytest.fixture
def policies(db):
    return {
        'early': RefundPolicy.objects.create(
            name='Full refund', hours_before_pickup=72, refund_percentage=Decimal('100'), refund_deposit=True),
        'late': RefundPolicy.objects.create(
            name='Late cancellation', hours_before_pickup=0, refund_percentage=Decimal('50'), refund_deposit=False),
    }


@pytest.mark.django_db
def test_policy_selection(policies, category):
    assert select_refund_policy(category.pk, Decimal('100')) == policies['early']
    assert select_refund_policy(category.pk, Decimal('71.9')) == policies['late']
    assert select_refund_policy(category.pk, Decimal('-2')) is None


@pytest.mark.django_db
def test_category_policy_beats_generic(policies, category):
    specific = RefundPolicy.objects.create(
        name='Saloon late', hours_before_pickup=0, refund_percentage=Decimal('25'), category=category)
    assert select_refund_policy(category.pk, Decimal('10')) == specific
    assert select_refund_policy(None, Decimal('10')) == policies['late']


@pytest.mark.django_db
def test_priority_wins(policies, category):
    preferred = RefundPolicy.objects.create(
        name='Promo window', hours_before_pickup=0, refund_percentage=Decimal('80'), priority=-1)
    assert select_refund_policy(category.pk, Decimal('100')) == preferred


@pytest.mark.django_db
def test_late_cancellation_keeps_deposit(policies, paid_booking, renter, now):
    outcome = cancel_booking(paid_booking, renter, reason='Plans changed', now=now + timedelta(hours=14))

    assert outcome.policy == policies['late']
    assert outcome.refund_amount == Decimal('300.00')
    assert outcome.deposit_refund == Decimal('0.00')
    assert outcome.transaction.amount == Decimal('300.00')
    assert outcome.transaction.transaction_type == 'refund'

    paid_booking.refresh_from_db()
    assert paid_booking.status == 'cancelled'
    assert paid_booking.payment_status == 'partial_refund'
    assert NotificationJob.objects.filter(booking=paid_booking, template_name='booking_cancelled').count() == 2
    assert not NotificationJob.objects.filter(booking=paid_booking, template_name='return_reminder',
                                              status='pending').exists()


@pytest.mark.django_db
def test_early_cancellation_refunds_everything(policies, renter, vehicle, now):
    service = BookingService()
    pickup = now + timedelta(days=5)
    booking = service.create_booking(renter, vehicle, pickup, pickup + timedelta(days=3), now=now)
    service.confirm_payment(service.initiate_payment(booking, renter), now=now)

    outcome = cancel_booking(booking, renter, now=now)

    assert outcome.total_refund == Decimal('900.00')
    booking.refresh_from_db()
    # the platform fee is kept
    assert booking.payment_status == 'partial_refund'


@pytest.mark.django_db
def test_no_matching_policy(paid_booking, renter, now):
    outcome = cancel_booking(paid_booking, renter, now=now)

    assert outcome.policy is None
    assert outcome.transaction is None
    paid_booking.refresh_from_db()
    assert paid_booking.payment_status == 'non_refundable'


@pytest.mark.django_db
def test_unpaid_booking_cancels_without_refund(policies, booking, renter):
    outcome = cancel_booking(booking, renter)

    assert outcome.total_refund == Decimal('0.00')
    assert PaymentTransaction.objects.filter(transaction_type='refund').count() == 0
    booking.refresh_from_db()
    assert booking.payment_status == 'unpaid'


@pytest.mark.django_db
def test_owner_cannot_cancel(booking, owner):
    with pytest.raises(ForbiddenError):
        cancel_booking(booking, owner)


@pytest.mark.django_db
def test_cancelled_booking_cannot_be_cancelled_again(booking, renter):
    cancel_booking(booking, renter)
    with pytest.raises(ConflictError):
        cancel_booking(booking, renter)


@pytest.mark.django_db
def test_cancel_closes_pending_payment(booking, renter):
    service = BookingService()
    txn = service.initiate_payment(booking, renter)
    cancel_booking(booking, renter)

    txn.refresh_from_db()
    assert txn.status == 'cancelled'
    with pytest.raises(ConflictError) as excinfo:
        service.confirm_payment(txn, external_id='MOMO-LATE')
    assert excinfo.value.code == 'transaction_not_pending'

    booking.refresh_from_db()
    assert booking.status == 'cancelled'
    assert booking.payment_status == 'unpaid'


@pytest.mark.django_db
def test_payment_rejected_for_cancelled_booking(booking, renter, admin_user):
    service = BookingService()
    txn = service.initiate_payment(booking, renter)
    service.update_status(booking, admin_user, 'cancelled')

    with pytest.raises(ConflictError) as excinfo:
        service.confirm_payment(txn, external_id='MOMO-LATE')
    assert excinfo.value.code == 'not_awaiting_payment'

    txn.refresh_from_db()
    assert txn.status == 'pending'
    booking.refresh_from_db()
    assert booking.payment_status == 'unpaid'
