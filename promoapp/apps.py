from django.apps import AppConfig


class PromoappConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'promoapp'
