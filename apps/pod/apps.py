from django.apps import AppConfig


class PodConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.pod'
    verbose_name = 'Proof of Delivery'
