from decimal import Decimal

import pytest


@pytest.mark.django_db
def test_daily_rate_resolution(vehicle):
    assert vehicle.resolved_daily_rate() == Decimal('200.00')
    vehicle.daily_rate = Decimal('180.00')
    assert vehicle.resolved_daily_rate() == Decimal('180.00')


@pytest.mark.django_db
def test_bookable(vehicle, now):
    assert vehicle.is_bookable
    vehicle.deleted_at = now
    assert not vehicle.is_bookable


@pytest.mark.django_db
def test_inclusions(vehicle):
    assert vehicle.inclusion('extraKmRate') is None
    vehicle.inclusions = {'extraKmRate': '2.00'}
    assert vehicle.inclusion('extraKmRate') == '2.00'


@pytest.mark.django_db
def test_protection_snapshot(protection_plan):
    snapshot = protection_plan.snapshot()
    assert snapshot['code'] == 'STANDARD'
    assert snapshot['max_fee'] == '150.00'
    assert snapshot['deductible'] is None
