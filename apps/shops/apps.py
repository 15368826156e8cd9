from django.apps import AppConfig


class ShopsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.shops'
    label = 'shops'
    verbose_name = 'Shops, Orders & Payouts'

    def ready(self):
        from . import signals  # noqa: F401
