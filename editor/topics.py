"""
Broker topology for completion notifications.

One topic exchange, one queue per notification kind (routing key = kind) and a
dead-letter exchange with a ``<queue>.dlq`` queue per kind. Dead-letter queues
are declared on first publish and never consumed by the workers.

Kept free of model imports: the Celery app loads this module at import time.
"""
from enum import Enum

from kombu import Exchange, Queue

EXCHANGE_NAME = "editor.notifications"
DEAD_LETTER_EXCHANGE_NAME = "editor.dead-letter"
SWEEP_QUEUE = "editor.sweep"
SWEEP_TASK = "editor.sweep.run"
DEFAULT_QUEUE = "celery"


class NotificationKind(str, Enum):
    UPLOAD = "upload"
    CUT = "cut"
    RESIZE = "resize"
    CONVERT = "convert"
    OVERLAY = "overlay"
    BATCH = "batch"
    USER_STATUS = "user-status"


notification_exchange = Exchange(EXCHANGE_NAME, type="topic", durable=True)
dead_letter_exchange = Exchange(DEAD_LETTER_EXCHANGE_NAME, type="topic", durable=True)


def queue_name(kind: NotificationKind) -> str:
    return f"editor.{kind.value}"


def dead_letter_queue_name(kind: NotificationKind) -> str:
    return f"{queue_name(kind)}.dlq"


def consumer_task_name(kind: NotificationKind) -> str:
    return f"editor.consume.{kind.value}"


def notification_queue(kind: NotificationKind) -> Queue:
    return Queue(queue_name(kind), notification_exchange, routing_key=kind.value, durable=True)


def dead_letter_queue(kind: NotificationKind) -> Queue:
    return Queue(dead_letter_queue_name(kind), dead_letter_exchange, routing_key=kind.value, durable=True)


def build_task_queues() -> tuple:
    queues = [notification_queue(kind) for kind in NotificationKind]
    queues.append(Queue(SWEEP_QUEUE, routing_key=SWEEP_QUEUE))
    queues.append(Queue(DEFAULT_QUEUE, routing_key=DEFAULT_QUEUE))
    return tuple(queues)


def build_task_routes() -> dict:
    routes = {
        consumer_task_name(kind): {
            "queue": queue_name(kind),
            "exchange": EXCHANGE_NAME,
            "exchange_type": "topic",
            "routing_key": kind.value,
        }
        for kind in NotificationKind
    }
    routes[SWEEP_TASK] = {"queue": SWEEP_QUEUE, "routing_key": SWEEP_QUEUE}
    return routes
