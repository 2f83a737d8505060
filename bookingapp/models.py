from django.db import models
from django.conf import settings

from coreapp.money import ZERO, sum_amounts

# Create your models here.
class Booking(models.Model):

    STATUS_CHOICES = (
        ('pending_payment', 'Pending Payment'),
        ('confirmed', 'Confirmed'),
        ('ongoing', 'Ongoing'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
        ('no_show', 'No Show'),
    )

    PAYMENT_STATUS_CHOICES = (
        ('unpaid', 'Unpaid'),
        ('paid', 'Paid'),
        ('partial_refund', 'Partial Refund'),
        ('refunded', 'Refunded'),
        ('non_refundable', 'Non Refundable'),
    )

    TERMINAL_STATUSES = ('completed', 'cancelled', 'no_show')

    booking_reference = models.CharField(max_length=32, unique=True)

    renter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='bookings'
    )

    # Copied from the vehicle at creation
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='owned_bookings'
    )

    vehicle = models.ForeignKey(
        'vehicleapp.Vehicle',
        on_delete=models.PROTECT,
        related_name='bookings'
    )

    pickup_datetime = models.DateTimeField()
    return_datetime = models.DateTimeField()
    actual_pickup_datetime = models.DateTimeField(null=True, blank=True)
    booked_days = models.PositiveIntegerField(null=True, blank=True)

    pickup_location = models.JSONField(null=True, blank=True)
    return_location = models.JSONField(null=True, blank=True)

    with_driver = models.BooleanField(default=False)
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='driven_bookings'
    )

    currency = models.CharField(max_length=8, default='GHS')
    rental_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    deposit_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    driver_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    insurance_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    protection_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    promo_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='unpaid')
    payment_method = models.CharField(max_length=32, default='momo')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending_payment')

    insurance_plan = models.ForeignKey(
        'vehicleapp.InsurancePlan',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )

    protection_plan = models.ForeignKey(
        'vehicleapp.ProtectionPlan',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )
    protection_snapshot = models.JSONField(null=True, blank=True)

    promo_code = models.ForeignKey(
        'promoapp.PromoCode',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bookings'
    )

    # Check-in
    pre_trip_odometer = models.PositiveIntegerField(null=True, blank=True)
    pre_trip_fuel_level = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)
    pre_trip_notes = models.TextField(blank=True)
    pre_trip_photos = models.JSONField(default=list, blank=True)
    pre_trip_recorded_at = models.DateTimeField(null=True, blank=True)
    pre_trip_recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    # Check-out
    post_trip_odometer = models.PositiveIntegerField(null=True, blank=True)
    post_trip_fuel_level = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)
    post_trip_notes = models.TextField(blank=True)
    post_trip_photos = models.JSONField(default=list, blank=True)
    post_trip_recorded_at = models.DateTimeField(null=True, blank=True)
    post_trip_recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['vehicle', 'status']),
            models.Index(fields=['status', 'payment_status', 'created_at']),
        ]

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def component_sum(self):
        return sum_amounts(
            self.rental_amount,
            self.deposit_amount,
            self.driver_amount,
            self.insurance_amount,
            self.protection_amount,
            self.platform_fee,
        )

    def total_level_discount(self):
        """Discount applied to the total rather than to a component"""
        discount = self.component_sum() - self.total_amount
        return discount if discount > ZERO else ZERO

    def __str__(self):
        return self.booking_reference


class PaymentTransaction(models.Model):

    TYPE_CHOICES = (
        ('payment', 'Payment'),
        ('refund', 'Refund'),
        ('payout', 'Payout'),
        ('deposit', 'Deposit'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
    )

    booking = models.ForeignKey(
        Booking,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transactions'
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payment_transactions'
    )

    transaction_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=8, default='GHS')
    method = models.CharField(max_length=32, default='momo')
    reference = models.CharField(max_length=64, unique=True)
    external_transaction_id = models.CharField(max_length=128, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    error_message = models.CharField(max_length=512, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.transaction_type} {self.reference}"


class BookingCharge(models.Model):

    STATUS_CHOICES = (
        ('pending_review', 'Pending Review'),
        ('approved', 'Approved'),
        ('paid', 'Paid'),
        ('rejected', 'Rejected'),
        ('waived', 'Waived'),
    )

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name='charges'
    )

    charge_type = models.CharField(max_length=32)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=8, default='GHS')
    label = models.CharField(max_length=128)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending_review')
    settled_at = models.DateTimeField(null=True, blank=True)

    payment_transaction = models.ForeignKey(
        PaymentTransaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='charges'
    )

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.label} ({self.amount})"


class DepositRefund(models.Model):

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
    )

    booking = models.OneToOneField(
        Booking,
        on_delete=models.PROTECT,
        related_name='deposit_refund'
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=8, default='GHS')
    payment_method = models.CharField(max_length=32, default='momo')
    due_date = models.DateTimeField()
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending')
    reference = models.CharField(max_length=64)
    external_refund_id = models.CharField(max_length=128, blank=True)
    notes = models.TextField(blank=True)
    error_message = models.CharField(max_length=512, blank=True)

    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.reference


class RefundPolicy(models.Model):

    name = models.CharField(max_length=128)
    description = models.CharField(max_length=512, blank=True)
    hours_before_pickup = models.PositiveIntegerField()

    # Empty means the policy applies to every category
    category = models.ForeignKey(
        'vehicleapp.CarCategory',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='refund_policies'
    )

    refund_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    refund_deposit = models.BooleanField(default=True)
    priority = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.hours_before_pickup}h, {self.refund_percentage}%)"
