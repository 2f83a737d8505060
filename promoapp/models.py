from django.db import models
from django.conf import settings
from vehicleapp.models import CarCategory, City, Vehicle

# Create your models here.
class PromoCode(models.Model):

    PROMO_TYPE_CHOICES = (
        ('percentage', 'Percentage'),
        ('fixed_amount', 'Fixed Amount'),
        ('free_addon', 'Free Addon'),
        ('commission_reduction', 'Commission Reduction'),
        ('owner_vehicle_discount', 'Owner Vehicle Discount'),
    )

    TARGET_USER_CHOICES = (
        ('renter', 'Renter'),
        ('owner', 'Owner'),
        ('both', 'Both'),
    )

    APPLIES_TO_CHOICES = (
        ('total_amount', 'Total Amount'),
        ('platform_fee', 'Platform Fee'),
        ('protection_plan', 'Protection Plan'),
        ('rental_amount', 'Rental Amount'),
        ('commission', 'Commission'),
    )

    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=500, blank=True)

    promo_type = models.CharField(max_length=32, choices=PROMO_TYPE_CHOICES)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    target_user_type = models.CharField(max_length=16, choices=TARGET_USER_CHOICES, default='renter')
    applies_to = models.CharField(max_length=32, choices=APPLIES_TO_CHOICES, default='total_amount')

    minimum_booking_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    maximum_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()

    max_total_uses = models.PositiveIntegerField(null=True, blank=True)
    max_uses_per_user = models.PositiveIntegerField(default=1)
    current_total_uses = models.PositiveIntegerField(default=0)

    is_active = models.BooleanField(default=True)
    first_time_users_only = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_promo_codes'
    )

    category = models.ForeignKey(CarCategory, on_delete=models.SET_NULL, null=True, blank=True)
    city = models.ForeignKey(City, on_delete=models.SET_NULL, null=True, blank=True)
    vehicle = models.ForeignKey(Vehicle, on_delete=models.SET_NULL, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.code


class PromoCodeUsage(models.Model):

    promo_code = models.ForeignKey(
        PromoCode,
        on_delete=models.CASCADE,
        related_name='usages'
    )

    code = models.CharField(max_length=50)
    used_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='promo_usages'
    )
    user_type = models.CharField(max_length=20)

    # Plain id so usage rows do not depend on the booking app
    booking_id = models.PositiveBigIntegerField(null=True, blank=True)

    original_amount = models.DecimalField(max_digits=12, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2)
    final_amount = models.DecimalField(max_digits=12, decimal_places=2)
    applied_to = models.CharField(max_length=32)

    used_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.code} by {self.used_by}"
