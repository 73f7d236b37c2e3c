"""
Periodic retry sweep over records parked in ERROR.

MediaAsset rows are re-promoted from their upload file, BatchJob rows from the
final artifact left in scratch when promotion failed. Records at the retry
ceiling are closed as FAILED_PERMANENTLY without another attempt. COMPLETED and
FAILED_PERMANENTLY rows are never selected, so running the sweep again is
harmless.

Only one sweep runs at a time across every worker: the pass holds a lock key
in the shared Django cache, and a tick that cannot take it within
``RETRY_SWEEP_LOCK_WAIT_SECONDS`` is skipped.
"""
import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from uuid import uuid4

from django.conf import settings
from django.core.cache import cache

from .errors import EditorError, MissingResourceError
from .lifecycle import Transition, lifecycle as default_lifecycle
from .models import BatchJob, MediaAsset, Status
from .notifier import notifier as default_notifier
from .storage import PROCESSED_PREFIX, RAW_PREFIX, DurableStore
from .topics import NotificationKind

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "editor:retry-sweep:lock"
SWEEP_LOCK_POLL_SECONDS = 0.5


@contextmanager
def sweep_lock(wait: float, expire: float):
    """
    Yield True once the cache lock is held, or False if it stayed taken for
    ``wait`` seconds. The key expires after ``expire`` seconds so a crashed
    worker cannot hold it forever.
    """
    token = uuid4().hex
    deadline = time.monotonic() + wait
    while not cache.add(SWEEP_LOCK_KEY, token, expire):
        if time.monotonic() >= deadline:
            yield False
            return
        time.sleep(SWEEP_LOCK_POLL_SECONDS)
    try:
        yield True
    finally:
        # the key may have expired and been taken by another sweep
        if cache.get(SWEEP_LOCK_KEY) == token:
            cache.delete(SWEEP_LOCK_KEY)


@dataclass
class SweepReport:
    examined: int = 0
    completed: int = 0
    failed: int = 0
    failed_permanently: int = 0
    skipped: bool = False

    def as_dict(self) -> dict:
        return asdict(self)


class RetrySweep:
    def __init__(self, store=None, lifecycle=None, notifier=None, lock_wait=None, lock_expire=None):
        self.store = store or DurableStore()
        self.lifecycle = lifecycle or default_lifecycle
        self.notifier = notifier or default_notifier
        self.lock_wait = settings.RETRY_SWEEP_LOCK_WAIT_SECONDS if lock_wait is None else lock_wait
        self.lock_expire = settings.RETRY_SWEEP_LOCK_EXPIRE_SECONDS if lock_expire is None else lock_expire

    def run(self) -> SweepReport:
        with sweep_lock(self.lock_wait, self.lock_expire) as acquired:
            if not acquired:
                logger.warning("retry_sweep_skipped", extra={"reason": "lock_held", "waited_seconds": self.lock_wait})
                return SweepReport(skipped=True)
            report = SweepReport()
            for asset in MediaAsset.objects.filter(status=Status.ERROR).order_by("updated_at"):
                self._sweep_one(asset, self._promote_asset, NotificationKind.UPLOAD, report)
            for batch in BatchJob.objects.filter(status=Status.ERROR).order_by("updated_at"):
                self._sweep_one(batch, self._promote_batch, NotificationKind.BATCH, report)
            logger.info("retry_sweep_finished", extra=report.as_dict())
            return report

    def _sweep_one(self, record, remediate, kind: NotificationKind, report: SweepReport) -> None:
        report.examined += 1
        if record.retry_count >= self.lifecycle.ceiling:
            self.lifecycle.fail_permanently(record)
            report.failed_permanently += 1
            logger.warning("retry_sweep_ceiling_reached", extra={"record": str(record), "retry_count": record.retry_count})
            return

        try:
            remediate(record)
        except EditorError as exc:
            transition = self._remediation_failed(record, report)
            logger.warning(
                "retry_sweep_remediation_failed",
                extra={"record": str(record), "retry_count": transition.retry_count, "error": str(exc)},
            )
            return
        except Exception:
            transition = self._remediation_failed(record, report)
            logger.exception(
                "retry_sweep_remediation_crashed",
                extra={"record": str(record), "retry_count": transition.retry_count},
            )
            return

        self.lifecycle.complete(record)
        report.completed += 1
        self.notifier.publish(kind, record.id, status_hint="completed")
        logger.info("retry_sweep_recovered", extra={"record": str(record)})

    def _remediation_failed(self, record, report: SweepReport) -> Transition:
        transition = self.lifecycle.fail(record)
        if transition.failed_permanently:
            report.failed_permanently += 1
        else:
            report.failed += 1
        return transition

    def _promote_asset(self, asset: MediaAsset) -> None:
        if asset.is_promoted:
            return
        local = Path(asset.local_path)
        if not local.is_file():
            raise MissingResourceError("upload file", asset.local_path)
        asset.storage_path = self.store.upload(local, f"{RAW_PREFIX}/{local.name}")
        asset.save(update_fields=["storage_path", "updated_at"])

    def _promote_batch(self, batch: BatchJob) -> None:
        if batch.artifact_path:
            return
        if not batch.local_artifact_path or not Path(batch.local_artifact_path).is_file():
            raise MissingResourceError("local artifact", batch.local_artifact_path or batch.id)
        local = Path(batch.local_artifact_path)
        batch.artifact_path = self.store.upload(local, f"{PROCESSED_PREFIX}/{local.name}")
        batch.local_artifact_path = ""
        batch.save(update_fields=["artifact_path", "local_artifact_path", "updated_at"])
