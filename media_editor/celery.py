import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "media_editor.settings")

celery_app = Celery("media_editor")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")

from editor.topics import build_task_queues, build_task_routes  # noqa: E402

celery_app.conf.task_queues = build_task_queues()
celery_app.conf.task_routes = build_task_routes()
celery_app.autodiscover_tasks()
