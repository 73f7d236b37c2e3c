from rest_framework import serializers

from .models import BatchJob, MediaAsset


class MediaAssetSerializer(serializers.ModelSerializer):
    class Meta:
        model = MediaAsset
        fields = [
            "id",
            "original_name",
            "kind",
            "container_format",
            "duration_seconds",
            "size_bytes",
            "storage_path",
            "status",
            "retry_count",
            "created_at",
            "updated_at",
        ]


class BatchJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = BatchJob
        fields = [
            "id",
            "asset",
            "status",
            "retry_count",
            "operations",
            "processing_steps",
            "artifact_path",
            "error",
            "created_at",
            "updated_at",
        ]


class UploadCreateSerializer(serializers.Serializer):
    file = serializers.FileField()


class BatchSubmitSerializer(serializers.Serializer):
    """
    Only the envelope is checked here; the operations themselves are
    validated as a chain against the asset.
    """
    asset_id = serializers.UUIDField()
    operations = serializers.ListField(child=serializers.DictField(), allow_empty=True)
