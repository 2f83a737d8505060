from django.apps import AppConfig


class PayoutappConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'payoutapp'
