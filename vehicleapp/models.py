from django.db import models
from django.conf import settings

# Create your models here.
class CarCategory(models.Model):

    name = models.CharField(max_length=128)
    description = models.CharField(max_length=512, blank=True)

    default_daily_rate = models.DecimalField(max_digits=10, decimal_places=2)
    min_daily_rate = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    max_daily_rate = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    default_deposit_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    requires_driver = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class City(models.Model):

    name = models.CharField(max_length=128)
    region = models.CharField(max_length=128, blank=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class Vehicle(models.Model):

    STATUS_CHOICES = (
        ('pending_review', 'Pending Review'),
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('suspended', 'Suspended'),
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='vehicles'
    )

    category = models.ForeignKey(
        CarCategory,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='vehicles'
    )

    city = models.ForeignKey(
        City,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='vehicles'
    )

    plate_number = models.CharField(max_length=32)
    make = models.CharField(max_length=64)
    model = models.CharField(max_length=64)
    year = models.PositiveIntegerField()
    transmission = models.CharField(max_length=16, default='automatic')
    fuel_type = models.CharField(max_length=32, default='petrol')
    seating_capacity = models.PositiveIntegerField(default=5)

    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default='pending_review')
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)

    # Overrides the category default when set
    daily_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Mileage charging; NULL falls back to the global defaults
    mileage_charging_enabled = models.BooleanField(default=True)
    mileage_allowance_per_day = models.PositiveIntegerField(null=True, blank=True)
    extra_km_rate = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    inclusions = models.JSONField(null=True, blank=True)

    deleted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def is_bookable(self):
        return self.deleted_at is None and self.status == 'active'

    def resolved_daily_rate(self):
        if self.daily_rate is not None:
            return self.daily_rate
        if self.category is not None:
            return self.category.default_daily_rate
        return None

    def inclusion(self, key):
        if isinstance(self.inclusions, dict):
            return self.inclusions.get(key)
        return None

    def __str__(self):
        return f"{self.make} {self.model} ({self.year})"


class InsurancePlan(models.Model):

    name = models.CharField(max_length=128)
    description = models.CharField(max_length=512, blank=True)
    daily_price = models.DecimalField(max_digits=10, decimal_places=2)
    coverage_summary = models.CharField(max_length=1024, blank=True)

    is_mandatory = models.BooleanField(default=False)
    is_default = models.BooleanField(default=False)
    active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class ProtectionPlan(models.Model):

    PRICING_MODE_CHOICES = (
        ('per_day', 'Per Day'),
        ('fixed', 'Fixed'),
    )

    code = models.CharField(max_length=64)
    name = models.CharField(max_length=128)
    description = models.CharField(max_length=512, blank=True)

    pricing_mode = models.CharField(max_length=32, choices=PRICING_MODE_CHOICES, default='per_day')
    daily_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    fixed_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    min_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    max_fee = models.DecimalField(max_digits=10, decimal_places=2)
    currency = models.CharField(max_length=8, default='GHS')

    includes_minor_damage_waiver = models.BooleanField(default=False)
    minor_waiver_cap = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    deductible = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    is_mandatory = models.BooleanField(default=False)
    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    def snapshot(self):
        return {
            'code': self.code,
            'name': self.name,
            'pricing_mode': self.pricing_mode,
            'daily_price': str(self.daily_price),
            'fixed_price': str(self.fixed_price),
            'min_fee': str(self.min_fee),
            'max_fee': str(self.max_fee),
            'includes_minor_damage_waiver': self.includes_minor_damage_waiver,
            'deductible': str(self.deductible) if self.deductible is not None else None,
        }

    def __str__(self):
        return self.name
