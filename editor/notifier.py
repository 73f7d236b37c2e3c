import logging

from celery import current_app

from .topics import NotificationKind, consumer_task_name, dead_letter_queue

logger = logging.getLogger(__name__)


class Notifier:
    """
    Publishes completion tokens (a record id plus an optional status hint).

    Publishing is fire-and-forget: a broker failure is logged and dropped,
    never retried here and never raised to the caller.
    """

    def __init__(self, app=None):
        self._app = app

    @property
    def app(self):
        return self._app or current_app

    def publish(self, kind: NotificationKind, record_id, status_hint: str | None = None) -> bool:
        kwargs = {"status_hint": status_hint} if status_hint else {}
        try:
            self.app.send_task(consumer_task_name(kind), args=[str(record_id)], kwargs=kwargs)
        except Exception:
            logger.exception("notification_publish_failed", extra={"kind": kind.value, "record_id": str(record_id)})
            return False
        logger.info("notification_published", extra={"kind": kind.value, "record_id": str(record_id)})
        return True

    def publish_dead_letter(self, kind: NotificationKind, payload: str, error: str) -> bool:
        queue = dead_letter_queue(kind)
        try:
            with self.app.producer_or_acquire() as producer:
                producer.publish(
                    payload,
                    exchange=queue.exchange,
                    routing_key=queue.routing_key,
                    declare=[queue],
                    serializer="json",
                    headers={"kind": kind.value, "error": error[:1000]},
                    retry=True,
                )
        except Exception:
            logger.exception("dead_letter_publish_failed", extra={"kind": kind.value, "payload": payload})
            return False
        logger.warning("dead_lettered", extra={"kind": kind.value, "payload": payload, "error": error})
        return True


notifier = Notifier()
