import logging
import threading

from celery import shared_task
from celery.signals import worker_shutting_down
from django.conf import settings

from .consumers import BoundedRetry, consume
from .sweep import RetrySweep
from .topics import SWEEP_TASK, NotificationKind, consumer_task_name

logger = logging.getLogger(__name__)

# Set once the worker starts shutting down; interrupts retry delays.
stop_event = threading.Event()


@worker_shutting_down.connect
def _interrupt_retries(sig=None, how=None, exitcode=None, **kwargs):
    logger.info("worker_shutting_down", extra={"how": how})
    stop_event.set()


def _consume(kind: NotificationKind, record_id: str, status_hint=None) -> dict:
    retry = BoundedRetry(
        settings.CONSUMER_RETRY_MAX_ATTEMPTS,
        settings.CONSUMER_RETRY_DELAY_SECONDS,
        stop_event,
    )
    outcome = consume(kind, record_id, status_hint, retry=retry)
    return {"kind": kind.value, "record_id": record_id, "attempts": outcome.attempts}


@shared_task(name=consumer_task_name(NotificationKind.UPLOAD))
def consume_upload(record_id: str, status_hint=None):
    return _consume(NotificationKind.UPLOAD, record_id, status_hint)


@shared_task(name=consumer_task_name(NotificationKind.CUT))
def consume_cut(record_id: str, status_hint=None):
    return _consume(NotificationKind.CUT, record_id, status_hint)


@shared_task(name=consumer_task_name(NotificationKind.RESIZE))
def consume_resize(record_id: str, status_hint=None):
    return _consume(NotificationKind.RESIZE, record_id, status_hint)


@shared_task(name=consumer_task_name(NotificationKind.CONVERT))
def consume_convert(record_id: str, status_hint=None):
    return _consume(NotificationKind.CONVERT, record_id, status_hint)


@shared_task(name=consumer_task_name(NotificationKind.OVERLAY))
def consume_overlay(record_id: str, status_hint=None):
    return _consume(NotificationKind.OVERLAY, record_id, status_hint)


@shared_task(name=consumer_task_name(NotificationKind.BATCH))
def consume_batch(record_id: str, status_hint=None):
    return _consume(NotificationKind.BATCH, record_id, status_hint)


@shared_task(name=consumer_task_name(NotificationKind.USER_STATUS))
def consume_user_status(record_id: str, status_hint=None):
    return _consume(NotificationKind.USER_STATUS, record_id, status_hint)


@shared_task(name=SWEEP_TASK)
def run_retry_sweep():
    return RetrySweep().run().as_dict()
