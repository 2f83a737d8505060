from django.apps import AppConfig


class VehicleappConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'vehicleapp'
