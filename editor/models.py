import uuid
from django.db import models


class Status(models.TextChoices):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"
    FAILED_PERMANENTLY = "FAILED_PERMANENTLY"


TERMINAL_STATUSES = frozenset({Status.COMPLETED, Status.FAILED_PERMANENTLY})


class StatusTrackedModel(models.Model):
    """
    Columns every processing record shares. status/retry_count/updated_at are
    written only through editor.lifecycle.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    status = models.CharField(max_length=24, choices=Status.choices, default=Status.PROCESSING)
    retry_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class MediaAsset(StatusTrackedModel):
    class Kind(models.TextChoices):
        IMAGE = "image"
        VIDEO = "video"

    original_name = models.CharField(max_length=255)
    local_path = models.CharField(max_length=512)                     # under MEDIA_UPLOAD_DIR
    storage_path = models.CharField(max_length=1024, blank=True, default="")  # s3://bucket/key once promoted
    kind = models.CharField(max_length=8, choices=Kind.choices)
    container_format = models.CharField(max_length=16)               # extension without the dot
    duration_seconds = models.FloatField(null=True, blank=True)       # null for images
    size_bytes = models.BigIntegerField(default=0)

    class Meta:
        indexes = [models.Index(fields=["status"], name="editor_asset_status_idx")]

    @property
    def is_promoted(self) -> bool:
        return bool(self.storage_path)

    def __str__(self):
        return f"MediaAsset({self.id}, {self.original_name}, {self.status})"


class OperationRecord(StatusTrackedModel):
    """Audit/status row for one executed pipeline stage."""

    class Kind(models.TextChoices):
        CUT = "cut"
        RESIZE = "resize"
        CONVERT = "convert"
        OVERLAY = "overlay"

    asset = models.ForeignKey(MediaAsset, on_delete=models.CASCADE, related_name="operation_records")
    batch = models.ForeignKey(
        "BatchJob", on_delete=models.CASCADE, related_name="operation_records", null=True, blank=True
    )
    kind = models.CharField(max_length=8, choices=Kind.choices)
    position = models.PositiveSmallIntegerField(default=0)   # index within the batch chain
    parameters = models.JSONField(default=dict, blank=True)
    input_path = models.CharField(max_length=1024, blank=True, default="")
    output_path = models.CharField(max_length=1024, blank=True, default="")

    class Meta:
        ordering = ["created_at", "position"]
        indexes = [models.Index(fields=["kind", "status"], name="editor_oprec_kind_status_idx")]

    def __str__(self):
        return f"OperationRecord({self.id}, {self.kind}#{self.position}, {self.status})"


class BatchJob(StatusTrackedModel):
    asset = models.ForeignKey(MediaAsset, on_delete=models.CASCADE, related_name="batches")
    # Ordered list of {"type": ..., "parameters": {...}}; execution order == list order.
    operations = models.JSONField(default=list, blank=True)
    processing_steps = models.JSONField(default=list, blank=True)
    artifact_path = models.CharField(max_length=1024, blank=True, default="")        # durable reference
    local_artifact_path = models.CharField(max_length=1024, blank=True, default="")  # set only while awaiting promotion
    error = models.TextField(blank=True, default="")

    class Meta:
        indexes = [models.Index(fields=["status"], name="editor_batch_status_idx")]

    def __str__(self):
        return f"BatchJob({self.id}, {self.status})"
