from django.db import models
from django.conf import settings

# Create your models here.
class NotificationJob(models.Model):

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('queued', 'Queued'),
        ('sent', 'Sent'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
    )

    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notification_jobs'
    )

    booking = models.ForeignKey(
        'bookingapp.Booking',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notification_jobs'
    )

    template_name = models.CharField(max_length=64)
    subject = models.CharField(max_length=256, blank=True)
    message = models.TextField(blank=True)
    channels = models.JSONField(default=list)
    metadata = models.JSONField(default=dict, blank=True)

    scheduled_at = models.DateTimeField(null=True, blank=True)
    send_immediately = models.BooleanField(default=False)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default='pending')
    attempts = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'scheduled_at']),
        ]

    def __str__(self):
        return f"{self.template_name} -> {self.target_user}"
