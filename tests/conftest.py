from pathlib import Path

import pytest
from django.core.cache import cache

from editor.lifecycle import StatusLifecycle
from editor.metrics import PipelineMetrics
from editor.models import MediaAsset

from .fakes import FakeEngine, FakeStore, RecordingNotifier, write_png


@pytest.fixture(autouse=True)
def media_dirs(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path
    settings.MEDIA_UPLOAD_DIR = tmp_path / "uploads"
    settings.MEDIA_SCRATCH_DIR = tmp_path / "scratch"
    settings.STATUS_MAX_RETRIES = 3
    settings.S3_BUCKET = "test-bucket"
    settings.CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache", "LOCATION": "editor-tests"}}
    cache.clear()
    settings.MEDIA_UPLOAD_DIR.mkdir()
    settings.MEDIA_SCRATCH_DIR.mkdir()
    return settings


@pytest.fixture
def scratch_dir(settings) -> Path:
    return Path(settings.MEDIA_SCRATCH_DIR)


@pytest.fixture
def engine(scratch_dir):
    return FakeEngine(scratch_dir)


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def metrics():
    return PipelineMetrics()


@pytest.fixture
def lifecycle():
    return StatusLifecycle(max_retries=3)


@pytest.fixture
def video_asset(db, settings):
    path = Path(settings.MEDIA_UPLOAD_DIR) / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42fake-video")
    return MediaAsset.objects.create(
        original_name="clip.mp4",
        local_path=str(path),
        kind=MediaAsset.Kind.VIDEO,
        container_format="mp4",
        duration_seconds=60.0,
        size_bytes=path.stat().st_size,
    )


@pytest.fixture
def image_asset(db, settings):
    path = write_png(Path(settings.MEDIA_UPLOAD_DIR) / "photo.png")
    return MediaAsset.objects.create(
        original_name="photo.png",
        local_path=str(path),
        kind=MediaAsset.Kind.IMAGE,
        container_format="png",
        size_bytes=path.stat().st_size,
    )
