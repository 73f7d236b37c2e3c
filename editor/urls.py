from django.urls import path
from .views import BatchDetailView, BatchSubmitView, MediaAssetDetailView, MediaAssetUploadView

urlpatterns = [
    path("assets/", MediaAssetUploadView.as_view(), name="asset_upload"),
    path("assets/<uuid:asset_id>/", MediaAssetDetailView.as_view(), name="asset_detail"),
    path("batches/", BatchSubmitView.as_view(), name="batch_submit"),
    path("batches/<uuid:batch_id>/", BatchDetailView.as_view(), name="batch_detail"),
]
