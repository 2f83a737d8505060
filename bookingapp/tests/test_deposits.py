from datetime import timedelta
from decimal import Decimal

import pytest

from bookingapp.deposits import create_deposit_refund, update_deposit_refund_status
from bookingapp.models import Booking, DepositRefund
from coreapp.exceptions import ConflictError, ValidationError
from notificationapp.models import NotificationJob


@pytest.mark.django_db
def test_refund_due_date(paid_booking, now):
    refund = create_deposit_refund(paid_booking, now=now)

    assert refund.amount == Decimal('300.00')
    assert refund.due_date - now == timedelta(days=2)
    assert refund.reference.startswith(f'REF-{paid_booking.booking_reference}-')


@pytest.mark.django_db
def test_create_is_idempotent(paid_booking):
    first = create_deposit_refund(paid_booking)
    second = create_deposit_refund(paid_booking, amount=Decimal('10.00'))

    assert first == second
    assert DepositRefund.objects.count() == 1


@pytest.mark.django_db
def test_nothing_to_refund(paid_booking):
    Booking.objects.filter(pk=paid_booking.pk).update(deposit_amount=0)
    paid_booking.refresh_from_db()
    assert create_deposit_refund(paid_booking) is None


@pytest.mark.django_db
def test_status_flow(paid_booking, renter):
    refund = create_deposit_refund(paid_booking)

    refund = update_deposit_refund_status(refund, 'processing')
    assert refund.processed_at is not None

    refund = update_deposit_refund_status(refund, 'completed', external_refund_id='MOMO-R1')
    assert refund.external_refund_id == 'MOMO-R1'
    assert NotificationJob.objects.filter(target_user=renter, template_name='deposit_refund_processed').count() == 1

    # replay is a no-op
    update_deposit_refund_status(refund, 'completed')
    assert NotificationJob.objects.filter(template_name='deposit_refund_processed').count() == 1

    with pytest.raises(ConflictError):
        update_deposit_refund_status(refund, 'failed')


@pytest.mark.django_db
def test_unknown_refund_status(paid_booking):
    refund = create_deposit_refund(paid_booking)
    with pytest.raises(ValidationError):
        update_deposit_refund_status(refund, 'lost')
