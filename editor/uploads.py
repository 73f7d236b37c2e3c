import json
import logging
import mimetypes
import os
import subprocess
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from pathlib import Path
from threading import BoundedSemaphore
from uuid import uuid4

from django.conf import settings
from django.db import connection
from PIL import Image, UnidentifiedImageError

from .errors import InfrastructureError, MissingResourceError, OperationError, ProcessingError, ValidationError
from .lifecycle import lifecycle as default_lifecycle
from .metrics import get_metrics
from .models import MediaAsset
from .notifier import notifier as default_notifier
from .operations import IMAGE_FORMATS, VIDEO_FORMATS
from .storage import RAW_PREFIX, DurableStore
from .topics import NotificationKind

logger = logging.getLogger(__name__)


class UploadPool:
    """
    Thread pool for promoting uploads to durable storage.

    Up to ``max_workers`` promotions run at once and ``queue_capacity`` more
    wait for a worker; anything beyond that is refused.
    """

    def __init__(self, max_workers: int | None = None, queue_capacity: int | None = None):
        self.max_workers = max_workers or settings.UPLOAD_POOL_MAX_WORKERS
        self.queue_capacity = queue_capacity if queue_capacity is not None else settings.UPLOAD_POOL_QUEUE_CAPACITY
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="editor-upload")
        self._slots = BoundedSemaphore(self.max_workers + self.queue_capacity)

    def submit(self, fn, *args, **kwargs) -> Future:
        if not self._slots.acquire(blocking=False):
            raise InfrastructureError("upload pool is saturated, try again later")
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError as e:
            self._slots.release()
            raise InfrastructureError(f"upload pool is shut down: {e}") from e
        future.add_done_callback(lambda _: self._slots.release())
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


@lru_cache
def get_upload_pool() -> UploadPool:
    return UploadPool()


def save_uploaded_file(djangofile) -> Path:
    """Save to MEDIA_UPLOAD_DIR/<uuid>_<name> and return the absolute path."""
    uploads_dir = Path(settings.MEDIA_UPLOAD_DIR)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    safe_name = f"{uuid4().hex}_{os.path.basename(djangofile.name)}"
    dest = uploads_dir / safe_name
    with open(dest, "wb") as f:
        for chunk in djangofile.chunks():
            f.write(chunk)
    return dest


def guess_kind(path: str) -> str:
    """Return 'image' | 'video' | 'other' based on extension/mimetype."""
    ext = Path(path).suffix.lstrip(".").lower()
    if ext in IMAGE_FORMATS:
        return "image"
    if ext in VIDEO_FORMATS:
        return "video"
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        return "other"
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "other"


def probe_duration(path: Path) -> float | None:
    cmd = [
        settings.FFPROBE_BINARY,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "json",
        str(path),
    ]
    try:
        proc = subprocess.run(
            cmd,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=settings.TRANSFORM_TIMEOUT_SECONDS,
        )
    except subprocess.CalledProcessError as e:
        err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
        raise ProcessingError(f"could not probe {path.name}: {err[-1000:]}") from e
    except (subprocess.TimeoutExpired, OSError) as e:
        raise ProcessingError(f"could not probe {path.name}: {e}") from e

    try:
        duration = json.loads(proc.stdout or b"{}").get("format", {}).get("duration")
        return float(duration) if duration is not None else None
    except (ValueError, TypeError) as e:
        raise ProcessingError(f"unreadable probe output for {path.name}") from e


def probe_image(path: Path) -> None:
    try:
        with Image.open(path) as img:
            img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise ProcessingError(f"{path.name} is not a readable image: {e}") from e


def accept_upload(djangofile, *, pool=None, store=None, notifier=None, metrics=None, lifecycle=None) -> MediaAsset:
    """
    Store an uploaded file locally, record it as a PROCESSING MediaAsset and
    schedule its promotion to durable storage on the upload pool.
    """
    metrics = metrics or get_metrics()
    name = os.path.basename(djangofile.name or "")
    ext = Path(name).suffix.lstrip(".").lower()
    kind = guess_kind(name)
    if kind not in (MediaAsset.Kind.IMAGE, MediaAsset.Kind.VIDEO) or ext not in IMAGE_FORMATS + VIDEO_FORMATS:
        metrics.record_upload_rejected()
        supported = ", ".join(IMAGE_FORMATS + VIDEO_FORMATS)
        raise ValidationError([OperationError(-1, "upload", "file", f"unsupported file type; use one of {supported}")])

    local = save_uploaded_file(djangofile)
    try:
        duration = probe_duration(local) if kind == MediaAsset.Kind.VIDEO else None
        if kind == MediaAsset.Kind.IMAGE:
            probe_image(local)
    except ProcessingError:
        local.unlink(missing_ok=True)
        metrics.record_upload_rejected()
        raise

    asset = MediaAsset.objects.create(
        original_name=name,
        local_path=str(local),
        kind=kind,
        container_format=ext,
        duration_seconds=duration,
        size_bytes=local.stat().st_size,
    )

    pool = pool or get_upload_pool()
    try:
        pool.submit(
            _promote_in_worker,
            asset.id,
            store=store,
            notifier=notifier,
            lifecycle=lifecycle,
        )
    except InfrastructureError:
        asset.delete()
        local.unlink(missing_ok=True)
        metrics.record_upload_rejected()
        logger.warning("upload_rejected", extra={"name": name, "reason": "pool_saturated"})
        raise

    metrics.record_upload_accepted()
    logger.info("upload_accepted", extra={"asset_id": str(asset.id), "kind": kind, "size_bytes": asset.size_bytes})
    return asset


def promote_asset(asset_id, *, store=None, notifier=None, lifecycle=None):
    """
    Upload the asset's local file under ``raw/``. Any failure to promote
    leaves the asset in ERROR for the retry sweep.
    """
    store = store or DurableStore()
    notifier = notifier or default_notifier
    lifecycle = lifecycle or default_lifecycle

    asset = MediaAsset.objects.filter(pk=asset_id).first()
    if asset is None:
        raise MissingResourceError("MediaAsset", asset_id)

    local = Path(asset.local_path)
    try:
        remote = store.upload(local, f"{RAW_PREFIX}/{local.name}")
        asset.storage_path = remote
        asset.save(update_fields=["storage_path", "updated_at"])
    except InfrastructureError as exc:
        transition = lifecycle.fail(asset)
        logger.warning(
            "upload_promotion_failed",
            extra={"asset_id": str(asset.id), "status": transition.current, "error": str(exc)},
        )
        return transition
    except Exception:
        transition = lifecycle.fail(asset)
        logger.exception(
            "upload_promotion_crashed",
            extra={"asset_id": str(asset.id), "status": transition.current},
        )
        return transition

    transition = lifecycle.complete(asset)
    notifier.publish(NotificationKind.UPLOAD, asset.id)
    logger.info("upload_promoted", extra={"asset_id": str(asset.id), "storage_path": remote})
    return transition


def _promote_in_worker(asset_id, **kwargs):
    try:
        return promote_asset(asset_id, **kwargs)
    except Exception:
        logger.exception("upload_worker_crashed", extra={"asset_id": str(asset_id)})
        raise
    finally:
        # pool threads hold their own DB connection
        connection.close()
