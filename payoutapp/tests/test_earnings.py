from datetime import timedelta
from decimal import Decimal

import pytest

from bookingapp.lifecycle import BookingService
from bookingapp.models import Booking
from coreapp.exceptions import ConflictError, ForbiddenError, ValidationError
from payoutapp.earnings import PayoutService, owner_balance, period_earnings
from payoutapp.models import Payout


@pytest.fixture
def completed_booking(booking):
    Booking.objects.filter(pk=booking.pk).update(status='completed', payment_status='paid')
    booking.refresh_from_db()
    return booking


@pytest.mark.django_db
def test_balance_counts_completed_bookings_only(completed_booking, owner, other_renter, now):
    # still pending payment, not earned yet
    pickup = completed_booking.return_datetime + timedelta(days=1)
    BookingService().create_booking(other_renter, completed_booking.vehicle, pickup, pickup + timedelta(days=1), now=now)

    balance = owner_balance(owner)
    assert balance.total_earnings == Decimal('510.00')
    assert balance.available_balance == Decimal('510.00')


@pytest.mark.django_db
def test_request_full_payout(completed_booking, owner):
    payout = PayoutService().request_payout(owner)

    assert payout.amount == Decimal('510.00')
    assert payout.status == 'pending'
    assert payout.booking_ids == [completed_booking.pk]
    assert payout.reference.startswith('PYT-')
    assert owner_balance(owner).available_balance == Decimal('0.00')


@pytest.mark.django_db
def test_payout_cannot_exceed_balance(completed_booking, owner):
    with pytest.raises(ValidationError) as excinfo:
        PayoutService().request_payout(owner, amount=Decimal('600.00'))
    assert excinfo.value.code == 'insufficient_balance'

    with pytest.raises(ValidationError):
        PayoutService().request_payout(owner, amount=Decimal('0'))


@pytest.mark.django_db
def test_only_owners_request_payouts(completed_booking, renter):
    with pytest.raises(ForbiddenError):
        PayoutService().request_payout(renter)


@pytest.mark.django_db
def test_instant_withdrawal_fee(completed_booking, owner):
    withdrawal = PayoutService().request_instant_withdrawal(owner, Decimal('100.00'))

    assert withdrawal.fee_amount == Decimal('3.00')
    assert withdrawal.net_amount == Decimal('97.00')
    assert owner_balance(owner).available_balance == Decimal('410.00')


@pytest.mark.django_db
def test_failed_payout_releases_balance(completed_booking, owner):
    service = PayoutService()
    payout = service.request_payout(owner, amount=Decimal('200.00'))

    service.update_payout_status(payout, 'failed', error_message='Wallet closed')
    payout.refresh_from_db()
    assert payout.error_message == 'Wallet closed'
    assert owner_balance(owner).available_balance == Decimal('510.00')


@pytest.mark.django_db
def test_completed_payout_is_final(completed_booking, owner):
    service = PayoutService()
    payout = service.request_payout(owner)

    service.update_payout_status(payout, 'completed', external_id='TRF-1')
    assert service.update_payout_status(payout, 'completed').status == 'completed'
    with pytest.raises(ConflictError):
        service.update_payout_status(payout, 'failed')

    payout.refresh_from_db()
    assert payout.external_payout_id == 'TRF-1'
    assert owner_balance(owner).completed_payouts == Decimal('510.00')
    assert Payout.objects.count() == 1


@pytest.mark.django_db
def test_period_earnings(completed_booking, owner):
    returned = completed_booking.return_datetime
    inside = period_earnings(owner, returned - timedelta(days=1), returned + timedelta(days=1))
    outside = period_earnings(owner, returned + timedelta(days=1), returned + timedelta(days=2))

    assert inside.earnings == Decimal('510.00')
    assert inside.booking_ids == [completed_booking.pk]
    assert outside.earnings == Decimal('0.00')
