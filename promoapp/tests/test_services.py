from datetime import timedelta
from decimal import Decimal

import pytest

from coreapp.exceptions import NotFoundError
from promoapp.models import PromoCode, PromoCodeUsage
from promoapp.services import PromoCodeService, compute_discount


@pytest.fixture
def promo(db, now):
    return PromoCode.objects.create(
        code='WELCOME10',
        promo_type='percentage',
        discount_value=Decimal('10'),
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=30),
    )


def test_compute_discount_by_type(promo):
    assert compute_discount(promo, Decimal('990.00')) == Decimal('99.00')

    promo.maximum_discount_amount = Decimal('50.00')
    assert compute_discount(promo, Decimal('990.00')) == Decimal('50.00')

    promo.promo_type = 'commission_reduction'
    assert compute_discount(promo, Decimal('990.00')) == Decimal('0.00')


def test_valid_code_is_case_insensitive(promo, renter):
    result = PromoCodeService().validate('welcome10', renter.pk, Decimal('990.00'))

    assert result.is_valid
    assert result.discount_amount == Decimal('99.00')
    assert result.final_amount == Decimal('891.00')
    assert result.promo_code == promo


def test_unknown_code(db, renter):
    result = PromoCodeService().validate('NOPE', renter.pk, Decimal('100'))
    assert not result.is_valid
    assert result.error_message == 'Promo code not found'


def test_expired_code(promo, renter, now):
    result = PromoCodeService().validate('WELCOME10', renter.pk, Decimal('100'), now=now + timedelta(days=31))
    assert not result.is_valid


def test_owner_only_code_rejects_renters(promo, renter):
    promo.target_user_type = 'owner'
    promo.save()

    result = PromoCodeService().validate('WELCOME10', renter.pk, Decimal('100'))
    assert not result.is_valid
    assert 'owners' in result.error_message


def test_minimum_booking_amount(promo, renter):
    promo.minimum_booking_amount = Decimal('500.00')
    promo.save()

    assert not PromoCodeService().validate('WELCOME10', renter.pk, Decimal('499.99')).is_valid
    assert PromoCodeService().validate('WELCOME10', renter.pk, Decimal('500.00')).is_valid


def test_first_time_users_only(promo, renter, booking):
    promo.first_time_users_only = True
    promo.save()

    result = PromoCodeService().validate('WELCOME10', renter.pk, Decimal('100'))
    assert not result.is_valid


def test_apply_records_usage_and_blocks_reuse(promo, renter):
    service = PromoCodeService()
    usage = service.apply('WELCOME10', renter.pk, 42, Decimal('990.00'), 'renter')

    assert usage.discount_amount == Decimal('99.00')
    assert usage.final_amount == Decimal('891.00')
    promo.refresh_from_db()
    assert promo.current_total_uses == 1
    assert PromoCodeUsage.objects.filter(used_by=renter).count() == 1

    assert not service.validate('WELCOME10', renter.pk, Decimal('990.00')).is_valid


def test_apply_unknown_code(db, renter):
    with pytest.raises(NotFoundError):
        PromoCodeService().apply('NOPE', renter.pk, 1, Decimal('10'), 'renter')
