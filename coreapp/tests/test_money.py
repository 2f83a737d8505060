from decimal import Decimal

from coreapp.money import ZERO, clamp, multiply, percentage_of, quantize, sum_amounts, to_decimal


def test_quantize_rounds_half_up():
    assert quantize(Decimal('2.345')) == Decimal('2.35')
    assert quantize(Decimal('2.344')) == Decimal('2.34')
    assert quantize('10') == Decimal('10.00')


def test_to_decimal_falls_back_on_garbage():
    assert to_decimal(None) == ZERO
    assert to_decimal('abc') == ZERO
    assert to_decimal('abc', default=None) is None
    assert to_decimal(1.5) == Decimal('1.5')


def test_percentage_of():
    assert percentage_of(600, 15) == Decimal('90.00')
    assert percentage_of(Decimal('33.33'), Decimal('15')) == Decimal('5.00')


def test_multiply_and_sum():
    assert multiply(Decimal('200.00'), 3) == Decimal('600.00')
    assert sum_amounts(Decimal('600'), Decimal('90'), None, '300') == Decimal('990.00')


def test_clamp_respects_missing_bounds():
    assert clamp(Decimal('10'), Decimal('40'), Decimal('150')) == Decimal('40')
    assert clamp(Decimal('200'), None, Decimal('150')) == Decimal('150')
    assert clamp(Decimal('75'), None, None) == Decimal('75')
