from django.apps import AppConfig
from django.conf import settings


class GeoSchemaConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'geoschema'

    def ready(self):
        # Eager tasks run in this process; workers start from their own signal.
        if settings.CELERY_TASK_ALWAYS_EAGER:
            from .tasks import runtime
            runtime.start()
