import uuid

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient

from editor import views
from editor.batch import BatchOrchestrator
from editor.errors import InfrastructureError
from editor.models import BatchJob, Status
from editor.pipeline import PipelineExecutor

from .fakes import FakeEngine

pytestmark = pytest.mark.django_db


@pytest.fixture
def client():
    return APIClient()


@pytest.fixture
def orchestrator(monkeypatch, engine, store, notifier, metrics, lifecycle):
    executor = PipelineExecutor(engine=engine, notifier=notifier, lifecycle=lifecycle)
    built = BatchOrchestrator(executor=executor, store=store, notifier=notifier, metrics=metrics, lifecycle=lifecycle)
    monkeypatch.setattr(views, "build_orchestrator", lambda: built)
    return built


def test_submit_batch(client, orchestrator, video_asset):
    resp = client.post(
        "/api/batches/",
        {
            "asset_id": str(video_asset.id),
            "operations": [
                {"type": "cut", "parameters": {"start_time": "00:00:05", "end_time": "00:00:10"}},
                {"type": "resize", "parameters": {"width": 1280, "height": 720}},
            ],
        },
        format="json",
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["operations"] == ["cut", "resize"]
    assert body["status"] == Status.COMPLETED
    assert body["artifact"].startswith("s3://test-bucket/processed/clip_")
    assert BatchJob.objects.filter(pk=body["batch_id"]).exists()


def test_invalid_chain_is_400_with_every_error(client, orchestrator, video_asset):
    resp = client.post(
        "/api/batches/",
        {
            "asset_id": str(video_asset.id),
            "operations": [
                {"type": "resize", "parameters": {"width": 0, "height": 0}},
                {"type": "spin", "parameters": {}},
            ],
        },
        format="json",
    )

    assert resp.status_code == 400
    errors = resp.json()["errors"]
    assert [(e["index"], e["field"]) for e in errors] == [(0, "resolution"), (1, "type")]


def test_malformed_envelope_is_400(client, orchestrator):
    resp = client.post("/api/batches/", {"operations": []}, format="json")
    assert resp.status_code == 400
    assert "asset_id" in resp.json()


def test_unknown_asset_is_404(client, orchestrator):
    resp = client.post("/api/batches/", {"asset_id": str(uuid.uuid4()), "operations": []}, format="json")
    assert resp.status_code == 404


def test_failed_stage_is_422(client, monkeypatch, store, notifier, metrics, lifecycle, scratch_dir, video_asset):
    executor = PipelineExecutor(engine=FakeEngine(scratch_dir, fail_on={0}), notifier=notifier, lifecycle=lifecycle)
    built = BatchOrchestrator(executor=executor, store=store, notifier=notifier, metrics=metrics, lifecycle=lifecycle)
    monkeypatch.setattr(views, "build_orchestrator", lambda: built)

    resp = client.post(
        "/api/batches/",
        {"asset_id": str(video_asset.id), "operations": [{"type": "resize", "parameters": {"width": 1280, "height": 720}}]},
        format="json",
    )

    assert resp.status_code == 422
    assert "record_id" in resp.json()
    assert BatchJob.objects.get().status == Status.ERROR


def test_batch_detail_has_download_url_once_completed(client, monkeypatch, video_asset, lifecycle):
    batch = BatchJob.objects.create(
        asset=video_asset, processing_steps=["resize"], artifact_path="s3://test-bucket/processed/out.mp4"
    )
    monkeypatch.setattr(views, "create_presigned_get", lambda uri: f"https://signed.example/{uri[5:]}")

    pending = client.get(f"/api/batches/{batch.id}/").json()
    lifecycle.complete(batch)
    done = client.get(f"/api/batches/{batch.id}/").json()

    assert pending["artifact_url"] is None
    assert done["status"] == Status.COMPLETED
    assert done["artifact_url"] == "https://signed.example/test-bucket/processed/out.mp4"


def test_missing_batch_is_404(client):
    assert client.get(f"/api/batches/{uuid.uuid4()}/").status_code == 404


def test_asset_detail(client, video_asset):
    body = client.get(f"/api/assets/{video_asset.id}/").json()
    assert body["original_name"] == "clip.mp4"
    assert body["status"] == Status.PROCESSING
    assert body["duration_seconds"] == 60.0


def test_upload_is_accepted(client, monkeypatch, image_asset):
    monkeypatch.setattr(views, "accept_upload", lambda f: image_asset)

    resp = client.post("/api/assets/", {"file": SimpleUploadedFile("photo.png", b"png")}, format="multipart")

    assert resp.status_code == 202
    assert resp.json()["asset_id"] == str(image_asset.id)


def test_saturated_upload_pool_is_503(client, monkeypatch):
    def saturated(f):
        raise InfrastructureError("upload pool is saturated, try again later")

    monkeypatch.setattr(views, "accept_upload", saturated)

    resp = client.post("/api/assets/", {"file": SimpleUploadedFile("photo.png", b"png")}, format="multipart")

    assert resp.status_code == 503
