from django.db.models import F

from .models import DriverProfile


class DriverDirectory:
    """Looks up drivers that can be assigned to a booking."""

    def available_drivers(self):
        return DriverProfile.objects.filter(available=True, verification_status='verified')

    def find_available_verified_driver(self, driver_id=None):
        """Return the requested driver if assignable, else the best rated assignable driver"""
        drivers = self.available_drivers()
        if driver_id:
            return drivers.filter(pk=driver_id).first()
        return drivers.order_by(F('average_rating').desc(nulls_last=True), 'pk').first()

    def get_driver(self, driver_id):
        return DriverProfile.objects.filter(pk=driver_id).first()
