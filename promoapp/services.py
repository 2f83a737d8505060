import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.apps import apps
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from coreapp.exceptions import NotFoundError
from coreapp.money import ZERO, percentage_of, quantize, to_decimal

from .models import PromoCode, PromoCodeUsage

logger = logging.getLogger(__name__)


@dataclass
class PromoValidation:
    is_valid: bool
    discount_amount: Decimal = ZERO
    final_amount: Decimal = ZERO
    promo_type: str = ''
    error_message: str = ''
    promo_code: Optional[PromoCode] = None


def _invalid(amount, message):
    return PromoValidation(is_valid=False, final_amount=amount, error_message=message)


def compute_discount(promo, amount):
    """Discount for `amount`, capped at the promo's maximum"""
    if promo.promo_type == 'percentage':
        discount = percentage_of(amount, promo.discount_value)
    elif promo.promo_type in ('fixed_amount', 'free_addon', 'owner_vehicle_discount'):
        discount = to_decimal(promo.discount_value)
    else:
        # commission_reduction is settled at payout time
        discount = ZERO

    if promo.maximum_discount_amount is not None and discount > promo.maximum_discount_amount:
        discount = to_decimal(promo.maximum_discount_amount)
    return quantize(discount)


class PromoCodeService:
    """Validates and records promo code usage."""

    def find(self, code):
        return PromoCode.objects.filter(code__iexact=(code or '').strip()).first()

    def validate(self, code, renter_id, amount, vehicle_id=None, category_id=None,
                 city_id=None, days=None, now=None):
        now = now or timezone.now()
        amount = to_decimal(amount)

        promo = self.find(code)
        if promo is None:
            return _invalid(amount, 'Promo code not found')

        if not promo.is_active:
            return _invalid(amount, 'This promo code is no longer active')

        if now < promo.valid_from or now > promo.valid_until:
            return _invalid(amount, 'This promo code has expired or is not yet valid')

        if promo.max_total_uses is not None and promo.current_total_uses >= promo.max_total_uses:
            return _invalid(amount, 'This promo code has reached its maximum usage limit')

        # Guests may preview renter codes; user specific checks need an account
        user = None
        if renter_id:
            user_model = apps.get_model('accountapp', 'User')
            user = user_model.objects.filter(pk=renter_id).first()
            if user is None:
                return _invalid(amount, 'User not found')
            if promo.target_user_type in ('renter', 'owner') and user.role != promo.target_user_type:
                return _invalid(amount, f'This promo code is only for {promo.target_user_type}s')
        elif promo.target_user_type == 'owner':
            return _invalid(amount, 'This promo code is only for owners')

        if promo.vehicle_id and vehicle_id and promo.vehicle_id != vehicle_id:
            return _invalid(amount, 'This promo code only applies to a specific vehicle')

        if user is not None and promo.first_time_users_only:
            booking_model = apps.get_model('bookingapp', 'Booking')
            has_bookings = booking_model.objects.filter(renter=user).exclude(status='cancelled').exists()
            if has_bookings:
                return _invalid(amount, 'This promo code is only for first-time users')

        if promo.category_id and promo.category_id != category_id:
            return _invalid(amount, 'This promo code only applies to specific vehicle categories')

        if promo.city_id and promo.city_id != city_id:
            return _invalid(amount, 'This promo code only applies to specific locations')

        if promo.minimum_booking_amount is not None and amount < promo.minimum_booking_amount:
            return _invalid(amount, f'Minimum booking amount of {promo.minimum_booking_amount} required')

        if user is not None:
            used = PromoCodeUsage.objects.filter(promo_code=promo, used_by=user).count()
            if used >= promo.max_uses_per_user:
                return _invalid(amount, f'You have already used this promo code {promo.max_uses_per_user} time(s)')

        discount = compute_discount(promo, amount)
        return PromoValidation(
            is_valid=True,
            discount_amount=discount,
            final_amount=max(ZERO, quantize(amount - discount)),
            promo_type=promo.promo_type,
            promo_code=promo,
        )

    @transaction.atomic
    def apply(self, code, renter_id, booking_id, original_amount, role):
        """Record a usage row and bump the promo's usage counter"""
        promo = self.find(code)
        if promo is None:
            raise NotFoundError('Promo code not found', code='promo_not_found')

        original_amount = to_decimal(original_amount)
        discount = compute_discount(promo, original_amount)
        usage = PromoCodeUsage.objects.create(
            promo_code=promo,
            code=promo.code,
            used_by_id=renter_id,
            user_type=role,
            booking_id=booking_id,
            original_amount=quantize(original_amount),
            discount_amount=discount,
            final_amount=max(ZERO, quantize(original_amount - discount)),
            applied_to=promo.applies_to,
        )
        PromoCode.objects.filter(pk=promo.pk).update(current_total_uses=F('current_total_uses') + 1)

        logger.info("Promo code %s applied to booking %s, discount %s", promo.code, booking_id, discount)
        return usage
