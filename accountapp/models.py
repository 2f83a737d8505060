from django.db import models
from django.contrib.auth.models import AbstractUser

# Create your models here.
class User(AbstractUser):

    ROLE_CHOICES = (
        ('renter', 'Renter'),
        ('owner', 'Owner'),
        ('driver', 'Driver'),
        ('admin', 'Admin'),
    )

    phone_number = models.CharField(max_length=20, blank=True)
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='renter')
    is_verified = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def is_admin(self):
        return self.role == 'admin' or self.is_superuser

    def __str__(self):
        return self.username


class DriverProfile(models.Model):

    VERIFICATION_CHOICES = (
        ('unverified', 'Unverified'),
        ('pending', 'Pending'),
        ('verified', 'Verified'),
        ('rejected', 'Rejected'),
    )

    DRIVER_TYPE_CHOICES = (
        ('independent', 'Independent'),
        ('owner_employed', 'Owner Employed'),
        ('platform', 'Platform'),
    )

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name='driver_profile'
    )

    full_name = models.CharField(max_length=256, blank=True)
    license_number = models.CharField(max_length=64, blank=True)
    license_expiry_date = models.DateField(null=True, blank=True)
    verification_status = models.CharField(max_length=32, choices=VERIFICATION_CHOICES, default='unverified')
    driver_type = models.CharField(max_length=32, choices=DRIVER_TYPE_CHOICES, default='independent')

    available = models.BooleanField(default=True)
    daily_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    average_rating = models.DecimalField(max_digits=3, decimal_places=2, null=True, blank=True)
    total_trips = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.full_name or str(self.user)
