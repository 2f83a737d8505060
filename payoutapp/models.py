from django.db import models
from django.conf import settings

# Create your models here.
class Payout(models.Model):

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    )

    METHOD_CHOICES = (
        ('momo', 'Mobile Money'),
        ('bank', 'Bank Transfer'),
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payouts'
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=8, default='GHS')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending')
    method = models.CharField(max_length=16, choices=METHOD_CHOICES, default='momo')

    reference = models.CharField(max_length=64, unique=True)
    external_payout_id = models.CharField(max_length=256, blank=True)
    payout_details = models.JSONField(default=dict, blank=True)
    booking_ids = models.JSONField(default=list, blank=True)
    error_message = models.CharField(max_length=512, blank=True)

    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.reference


class InstantWithdrawal(models.Model):

    STATUS_CHOICES = Payout.STATUS_CHOICES
    METHOD_CHOICES = Payout.METHOD_CHOICES

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='instant_withdrawals'
    )

    # amount is what leaves the balance; the owner receives net_amount
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    fee_amount = models.DecimalField(max_digits=12, decimal_places=2)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=8, default='GHS')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending')
    method = models.CharField(max_length=16, choices=METHOD_CHOICES, default='momo')

    reference = models.CharField(max_length=64, unique=True)
    external_transfer_id = models.CharField(max_length=256, blank=True)
    payout_details = models.JSONField(default=dict, blank=True)
    error_message = models.CharField(max_length=512, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return self.reference
