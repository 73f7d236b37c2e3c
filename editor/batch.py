import logging
import time
from pathlib import Path
from uuid import uuid4

from django.conf import settings
from django.utils import timezone

from .errors import InfrastructureError, MissingResourceError, ProcessingError
from .lifecycle import lifecycle as default_lifecycle
from .metrics import get_metrics
from .models import BatchJob, MediaAsset
from .notifier import notifier as default_notifier
from .operations import spec_to_payload
from .pipeline import PipelineExecutor
from .storage import PROCESSED_PREFIX, DurableStore
from .topics import NotificationKind
from .validation import validate_chain

logger = logging.getLogger(__name__)


def artifact_name(original_name: str, output_format: str) -> str:
    """``clip.mp4`` + ``mov`` -> ``clip_1a2b3c4d19102026_processed.mov``."""
    stem = Path(original_name).stem or "media"
    return f"{stem}_{uuid4().hex[:8]}{timezone.now():%d%m%Y}_processed.{output_format}"


class BatchOrchestrator:
    """
    Runs one batch request end to end: validate, execute, promote, record.

    The chain is validated before the BatchJob row exists, so a rejected
    chain leaves nothing behind. Any later failure moves the BatchJob to
    ERROR (or FAILED_PERMANENTLY at the ceiling) before it is re-raised.
    """

    def __init__(self, executor=None, store=None, notifier=None, metrics=None, lifecycle=None, scratch_dir=None):
        self.scratch_dir = Path(scratch_dir or settings.MEDIA_SCRATCH_DIR)
        self.notifier = notifier or default_notifier
        self.lifecycle = lifecycle or default_lifecycle
        self.metrics = metrics or get_metrics()
        self.store = store or DurableStore()
        self.executor = executor or PipelineExecutor(
            notifier=self.notifier, lifecycle=self.lifecycle, scratch_dir=self.scratch_dir
        )

    def submit(self, asset_id, raw_operations) -> BatchJob:
        self.metrics.record_batch_request()
        self.metrics.queue_entered()
        started = time.monotonic()
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
            asset = MediaAsset.objects.filter(pk=asset_id).first()
            if asset is None:
                raise MissingResourceError("MediaAsset", asset_id)
            specs = validate_chain(asset, raw_operations)

            batch = BatchJob.objects.create(
                asset=asset,
                operations=[spec_to_payload(s) for s in specs],
                processing_steps=[s.kind.value for s in specs],
            )
            logger.info(
                "batch_created",
                extra={"batch_id": str(batch.id), "asset_id": str(asset.id), "steps": batch.processing_steps},
            )
            try:
                self._process(asset, batch, specs)
            except Exception as exc:
                self._record_failure(batch, exc)
                raise
        except Exception:
            self.metrics.record_batch_failure()
            raise
        finally:
            self.metrics.queue_left()
            self.metrics.record_batch_duration(time.monotonic() - started)

        self.metrics.record_batch_success()
        return batch

    def _process(self, asset, batch, specs) -> None:
        source, downloaded = self._resolve_source(asset)
        try:
            result = self.executor.run(asset, batch, specs, source)
        finally:
            if downloaded:
                Path(source).unlink(missing_ok=True)

        final = Path(result.final_path)
        target = final.with_name(artifact_name(asset.original_name, result.output_format))
        try:
            final.rename(target)
        except OSError as e:
            final.unlink(missing_ok=True)
            raise ProcessingError(f"could not stage final artifact: {e}", record_id=batch.id) from e

        try:
            remote = self.store.upload(target, f"{PROCESSED_PREFIX}/{target.name}")
        except InfrastructureError:
            # the sweep re-promotes from here
            batch.local_artifact_path = str(target)
            batch.save(update_fields=["local_artifact_path", "updated_at"])
            raise

        size = target.stat().st_size
        batch.artifact_path = remote
        batch.local_artifact_path = ""
        batch.save(update_fields=["artifact_path", "local_artifact_path", "updated_at"])
        self.lifecycle.complete(batch)
        self.notifier.publish(NotificationKind.BATCH, batch.id, status_hint="completed")
        self.metrics.record_processed_file_size(size)
        target.unlink(missing_ok=True)
        logger.info("batch_completed", extra={"batch_id": str(batch.id), "artifact": remote, "size_bytes": size})

    def _resolve_source(self, asset) -> tuple[str, bool]:
        if asset.local_path and Path(asset.local_path).is_file():
            return asset.local_path, False
        if asset.is_promoted:
            local = self.scratch_dir / f"source_{uuid4().hex[:16]}.{asset.container_format}"
            self.store.download(asset.storage_path, local)
            return str(local), True
        raise MissingResourceError("media file for asset", asset.id)

    def _record_failure(self, batch, exc: Exception) -> None:
        transition = self.lifecycle.fail(batch)
        batch.error = str(exc)[:4000]
        batch.save(update_fields=["error", "updated_at"])
        logger.error(
            "batch_failed",
            extra={
                "batch_id": str(batch.id),
                "status": transition.current,
                "retry_count": transition.retry_count,
                "error": batch.error,
            },
        )


def build_orchestrator() -> BatchOrchestrator:
    return BatchOrchestrator()
