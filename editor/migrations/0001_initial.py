import uuid

import django.db.models.deletion
from django.db import migrations, models


STATUS_CHOICES = [
    ("PROCESSING", "Processing"),
    ("COMPLETED", "Completed"),
    ("ERROR", "Error"),
    ("FAILED_PERMANENTLY", "Failed Permanently"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="MediaAsset",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="PROCESSING", max_length=24)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("original_name", models.CharField(max_length=255)),
                ("local_path", models.CharField(max_length=512)),
                ("storage_path", models.CharField(blank=True, default="", max_length=1024)),
                ("kind", models.CharField(choices=[("image", "Image"), ("video", "Video")], max_length=8)),
                ("container_format", models.CharField(max_length=16)),
                ("duration_seconds", models.FloatField(blank=True, null=True)),
                ("size_bytes", models.BigIntegerField(default=0)),
            ],
            options={
                "indexes": [models.Index(fields=["status"], name="editor_asset_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="BatchJob",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="PROCESSING", max_length=24)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("operations", models.JSONField(blank=True, default=list)),
                ("processing_steps", models.JSONField(blank=True, default=list)),
                ("artifact_path", models.CharField(blank=True, default="", max_length=1024)),
                ("local_artifact_path", models.CharField(blank=True, default="", max_length=1024)),
                ("error", models.TextField(blank=True, default="")),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="batches",
                        to="editor.mediaasset",
                    ),
                ),
            ],
            options={
                "indexes": [models.Index(fields=["status"], name="editor_batch_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="OperationRecord",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="PROCESSING", max_length=24)),
                ("retry_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "kind",
                    models.CharField(
                        choices=[("cut", "Cut"), ("resize", "Resize"), ("convert", "Convert"), ("overlay", "Overlay")],
                        max_length=8,
                    ),
                ),
                ("position", models.PositiveSmallIntegerField(default=0)),
                ("parameters", models.JSONField(blank=True, default=dict)),
                ("input_path", models.CharField(blank=True, default="", max_length=1024)),
                ("output_path", models.CharField(blank=True, default="", max_length=1024)),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="operation_records",
                        to="editor.mediaasset",
                    ),
                ),
                (
                    "batch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="operation_records",
                        to="editor.batchjob",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "position"],
                "indexes": [models.Index(fields=["kind", "status"], name="editor_oprec_kind_status_idx")],
            },
        ),
    ]
