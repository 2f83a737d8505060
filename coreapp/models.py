from django.db import models


# Create your models here.
class GlobalSetting(models.Model):
    """
    Runtime configuration value, one row per key.
    Keys look like 'Booking:PlatformFeePercentage'.
    """

    key = models.CharField(max_length=128, primary_key=True)
    value = models.CharField(max_length=512)
    description = models.CharField(max_length=255, blank=True)

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.key}={self.value}"
