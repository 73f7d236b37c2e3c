"""
Notification consumers: one reconcile handler per notification kind.

Every handler runs inside a BoundedRetry. A payload that cannot be parsed, or
a handler that keeps failing until the attempts run out (or the worker stops
while waiting between attempts), is published to the kind's dead-letter queue
and the failure is raised to the caller.
"""
import logging
import threading
import uuid
from dataclasses import dataclass

from django.contrib.auth import get_user_model

from .errors import MissingResourceError, ProcessingError
from .lifecycle import lifecycle
from .models import BatchJob, MediaAsset, OperationRecord, Status
from .notifier import notifier as default_notifier
from .topics import NotificationKind

logger = logging.getLogger(__name__)

COMPLETED_HINT = "completed"
USER_STATUS_HINTS = {"active": True, "inactive": False}


@dataclass(frozen=True)
class RetryOutcome:
    succeeded: bool
    attempts: int
    interrupted: bool = False
    error: Exception | None = None
    value: object = None

    @property
    def exhausted(self) -> bool:
        return not self.succeeded and not self.interrupted


class BoundedRetry:
    """
    Call a function up to ``max_attempts`` times, waiting ``delay`` seconds
    before every attempt but the first. Setting ``stop_event`` while waiting
    abandons the loop immediately.
    """

    def __init__(self, max_attempts: int, delay: float, stop_event: threading.Event | None = None):
        self.max_attempts = max(1, int(max_attempts))
        self.delay = max(0.0, float(delay))
        self.stop_event = stop_event or threading.Event()

    def run(self, fn, *args, **kwargs) -> RetryOutcome:
        error = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1 and self.stop_event.wait(self.delay):
                logger.warning("retry_interrupted", extra={"attempts": attempt - 1})
                return RetryOutcome(False, attempt - 1, interrupted=True, error=error)
            try:
                value = fn(*args, **kwargs)
            except Exception as exc:
                error = exc
                logger.warning(
                    "retry_attempt_failed",
                    extra={"attempt": attempt, "max_attempts": self.max_attempts, "error": str(exc)},
                )
                continue
            return RetryOutcome(True, attempt, value=value)
        return RetryOutcome(False, self.max_attempts, error=error)


# -- reconcile handlers --------------------------------------------------

def reconcile_upload(asset_id, status_hint=None):
    asset = MediaAsset.objects.filter(pk=asset_id).first()
    if asset is None:
        raise MissingResourceError("MediaAsset", asset_id)
    if asset.status == Status.PROCESSING and asset.is_promoted:
        lifecycle.complete(asset)
    return asset.status


def reconcile_operation(record_id, status_hint=None):
    record = OperationRecord.objects.filter(pk=record_id).first()
    if record is None:
        raise MissingResourceError("OperationRecord", record_id)
    if status_hint == COMPLETED_HINT and record.status == Status.PROCESSING:
        lifecycle.complete(record)
    return record.status


def reconcile_batch(batch_id, status_hint=None):
    batch = BatchJob.objects.filter(pk=batch_id).first()
    if batch is None:
        raise MissingResourceError("BatchJob", batch_id)
    if batch.status == Status.COMPLETED and not batch.artifact_path:
        raise ProcessingError(f"batch {batch_id} is completed without an artifact", record_id=batch_id)
    if batch.status == Status.PROCESSING and batch.artifact_path:
        lifecycle.complete(batch)
    return batch.status


def reconcile_user_status(user_id, status_hint=None):
    if status_hint not in USER_STATUS_HINTS:
        raise ProcessingError(f"unknown user status {status_hint!r}", record_id=user_id)
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        raise MissingResourceError("User", user_id)
    active = USER_STATUS_HINTS[status_hint]
    if user.is_active != active:
        user.is_active = active
        user.save(update_fields=["is_active"])
    return status_hint


HANDLERS = {
    NotificationKind.UPLOAD: reconcile_upload,
    NotificationKind.CUT: reconcile_operation,
    NotificationKind.RESIZE: reconcile_operation,
    NotificationKind.CONVERT: reconcile_operation,
    NotificationKind.OVERLAY: reconcile_operation,
    NotificationKind.BATCH: reconcile_batch,
    NotificationKind.USER_STATUS: reconcile_user_status,
}


def parse_identifier(kind: NotificationKind, payload):
    text = str(payload or "").strip()
    try:
        if kind == NotificationKind.USER_STATUS:
            return int(text)
        return uuid.UUID(text)
    except ValueError as e:
        raise ProcessingError(f"unparseable {kind.value} identifier {payload!r}") from e


def consume(kind: NotificationKind, payload, status_hint=None, *, retry: BoundedRetry, notifier=None) -> RetryOutcome:
    notifier = notifier or default_notifier
    try:
        record_id = parse_identifier(kind, payload)
    except ProcessingError as exc:
        logger.error("consumer_parse_failed", extra={"kind": kind.value, "payload": str(payload)})
        notifier.publish_dead_letter(kind, str(payload), str(exc))
        raise

    outcome = retry.run(HANDLERS[kind], record_id, status_hint)
    if outcome.succeeded:
        logger.info(
            "notification_consumed",
            extra={"kind": kind.value, "record_id": str(record_id), "attempts": outcome.attempts},
        )
        return outcome

    reason = "interrupted" if outcome.interrupted else str(outcome.error)
    logger.error(
        "consumer_retry_exhausted",
        extra={"kind": kind.value, "record_id": str(record_id), "attempts": outcome.attempts, "reason": reason},
        exc_info=outcome.error,
    )
    notifier.publish_dead_letter(kind, str(payload), reason)
    raise ProcessingError(f"{kind.value} notification for {record_id} failed: {reason}", record_id=record_id) from outcome.error
