from django.apps import AppConfig


class EditorConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "editor"

    def ready(self):
        # Wires the worker shutdown signal to the consumer stop event.
        from . import tasks  # noqa: F401
