"""
Status lifecycle shared by every processing record.

    PROCESSING --complete--> COMPLETED                      (terminal)
    PROCESSING/ERROR --fail--> ERROR                        (retry_count += 1)
    PROCESSING/ERROR --fail--> FAILED_PERMANENTLY           (when retry_count reaches the ceiling)

Nothing leaves COMPLETED or FAILED_PERMANENTLY. Each transition re-reads the
row under ``select_for_update`` inside a transaction, so concurrent writers to
the same record are serialized by the database rather than by the caller.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from .errors import LifecycleError, MissingResourceError, RetryExhaustedError
from .models import Status, TERMINAL_STATUSES

logger = logging.getLogger(__name__)

_STATUS_FIELDS = ["status", "retry_count", "updated_at"]


@runtime_checkable
class StatusTrackable(Protocol):
    status: str
    retry_count: int
    updated_at: datetime

    def save(self, *args, **kwargs): ...


@dataclass(frozen=True)
class Transition:
    previous: str
    current: str
    retry_count: int
    applied: bool = True

    @property
    def failed_permanently(self) -> bool:
        return self.current == Status.FAILED_PERMANENTLY


class StatusLifecycle:
    def __init__(self, max_retries: int | None = None):
        self._max_retries = max_retries

    @property
    def ceiling(self) -> int:
        if self._max_retries is not None:
            return self._max_retries
        return int(settings.STATUS_MAX_RETRIES)

    # -- public API ------------------------------------------------------

    def complete(self, record) -> Transition:
        return self._apply(record, self._to_completed)

    def fail(self, record) -> Transition:
        return self._apply(record, self._to_error)

    def fail_permanently(self, record) -> Transition:
        return self._apply(record, self._to_failed_permanently)

    # -- internals -------------------------------------------------------

    def _apply(self, record, mutate) -> Transition:
        if record is None:
            raise MissingResourceError("record", None)
        if not isinstance(record, StatusTrackable) or not hasattr(type(record), "objects"):
            raise LifecycleError(f"{type(record).__name__} does not carry a processing status")

        model = type(record)
        with transaction.atomic():
            current = model.objects.select_for_update().filter(pk=record.pk).first()
            if current is None:
                raise MissingResourceError(model.__name__, record.pk)
            result = mutate(current)
            if result.applied:
                current.updated_at = timezone.now()
                current.save(update_fields=_STATUS_FIELDS)

        for field in _STATUS_FIELDS:
            setattr(record, field, getattr(current, field))
        return result

    def _to_completed(self, record) -> Transition:
        previous = record.status
        if previous in TERMINAL_STATUSES:
            logger.info("status_transition_ignored", extra={"record": repr(record), "target": Status.COMPLETED})
            return Transition(previous, previous, record.retry_count, applied=False)
        record.status = Status.COMPLETED
        record.retry_count = 0
        return Transition(previous, record.status, 0)

    def _to_error(self, record) -> Transition:
        previous = record.status
        if previous in TERMINAL_STATUSES:
            logger.info("status_transition_ignored", extra={"record": repr(record), "target": Status.ERROR})
            return Transition(previous, previous, record.retry_count, applied=False)

        record.retry_count = int(record.retry_count or 0) + 1
        try:
            self._check_ceiling(record)
            record.status = Status.ERROR
        except RetryExhaustedError as exc:
            record.status = Status.FAILED_PERMANENTLY
            logger.warning(
                "status_retry_exhausted",
                extra={"record": repr(record), "retry_count": record.retry_count, "ceiling": exc.ceiling},
            )
        return Transition(previous, record.status, record.retry_count)

    def _to_failed_permanently(self, record) -> Transition:
        previous = record.status
        if previous in TERMINAL_STATUSES:
            return Transition(previous, previous, record.retry_count, applied=False)
        record.status = Status.FAILED_PERMANENTLY
        return Transition(previous, record.status, record.retry_count)

    def _check_ceiling(self, record) -> None:
        if record.retry_count >= self.ceiling:
            raise RetryExhaustedError(record, self.ceiling)


lifecycle = StatusLifecycle()
