from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .batch import build_orchestrator
from .errors import MissingResourceError
from .models import BatchJob, MediaAsset, Status
from .serializers import BatchJobSerializer, BatchSubmitSerializer, MediaAssetSerializer, UploadCreateSerializer
from .storage import create_presigned_get
from .uploads import accept_upload


class MediaAssetUploadView(views.APIView):
    """
    Accepts a file upload, stores it under MEDIA_UPLOAD_DIR, creates a
    MediaAsset and schedules promotion to durable storage.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = UploadCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        asset = accept_upload(ser.validated_data["file"])
        return Response({"asset_id": str(asset.id), "status": asset.status}, status=status.HTTP_202_ACCEPTED)


class MediaAssetDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, asset_id):
        asset = MediaAsset.objects.filter(pk=asset_id).first()
        if asset is None:
            raise MissingResourceError("MediaAsset", asset_id)
        return Response(MediaAssetSerializer(asset).data)


class BatchSubmitView(views.APIView):
    """
    Runs the whole operation chain synchronously and answers with the batch
    id and the ordered operation types.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = BatchSubmitSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        batch = build_orchestrator().submit(ser.validated_data["asset_id"], ser.validated_data["operations"])
        body = {
            "batch_id": str(batch.id),
            "operations": batch.processing_steps,
            "status": batch.status,
            "artifact": batch.artifact_path or None,
        }
        return Response(body, status=status.HTTP_201_CREATED)


class BatchDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, batch_id):
        batch = BatchJob.objects.filter(pk=batch_id).first()
        if batch is None:
            raise MissingResourceError("BatchJob", batch_id)

        data = BatchJobSerializer(batch).data
        # time-limited download URL once the artifact is durable
        if batch.status == Status.COMPLETED and batch.artifact_path:
            data["artifact_url"] = create_presigned_get(batch.artifact_path)
        else:
            data["artifact_url"] = None
        return Response(data)
