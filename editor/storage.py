from pathlib import Path

import boto3
from boto3.exceptions import RetriesExceededError, S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import InfrastructureError

RAW_PREFIX = "raw"
PROCESSED_PREFIX = "processed"
MAX_NAME_VERSIONS = 100

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
}


def _session():
    return boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )


def _client(endpoint_url: str):
    return _session().client(
        "s3",
        endpoint_url=endpoint_url,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    return _client(settings.S3_ENDPOINT_URL)


def get_presign_client():
    """
    Separate client for generating presigned URLs that the browser/curl will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    return _client(settings.S3_PUBLIC_ENDPOINT)


def split_uri(uri: str) -> tuple[str, str]:
    """'s3://bucket/some/key' -> ('bucket', 'some/key')."""
    if not uri.startswith("s3://"):
        raise ValueError(f"not an s3 uri: {uri!r}")
    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise ValueError(f"not an s3 uri: {uri!r}")
    return bucket, key


class DurableStore:
    """
    Blob store for artifacts that must outlive the scratch directory.

    Names are never overwritten: if ``logical_name`` is taken, the object is
    written as ``<stem>_v2<ext>``, ``<stem>_v3<ext>`` and so on.
    """

    def __init__(self, client=None, bucket: str | None = None):
        self._client = client
        self.bucket = bucket or settings.S3_BUCKET

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    def exists(self, logical_name: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=logical_name)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise InfrastructureError(f"could not check s3://{self.bucket}/{logical_name}: {e}") from e
        except BotoCoreError as e:
            raise InfrastructureError(f"could not check s3://{self.bucket}/{logical_name}: {e}") from e

    def _free_name(self, logical_name: str) -> str:
        if not self.exists(logical_name):
            return logical_name
        path = Path(logical_name)
        for version in range(2, MAX_NAME_VERSIONS + 1):
            candidate = str(path.with_name(f"{path.stem}_v{version}{path.suffix}"))
            if not self.exists(candidate):
                return candidate
        raise InfrastructureError(f"no free versioned name left for {logical_name}")

    def upload(self, local_file, logical_name: str) -> str:
        """Upload ``local_file`` and return its ``s3://`` reference."""
        local = Path(local_file)
        if not local.is_file():
            raise InfrastructureError(f"cannot upload missing file {local}")
        key = self._free_name(logical_name)
        extra = {}
        content_type = CONTENT_TYPES.get(local.suffix.lower())
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.upload_file(str(local), self.bucket, key, ExtraArgs=extra or None)
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise InfrastructureError(f"upload of {local.name} failed: {e}") from e
        return f"s3://{self.bucket}/{key}"

    def download(self, remote_uri: str, local_file) -> None:
        bucket, key = split_uri(remote_uri)
        local = Path(local_file)
        local.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.client.download_file(bucket, key, str(local))
        except (BotoCoreError, ClientError, RetriesExceededError) as e:
            local.unlink(missing_ok=True)
            raise InfrastructureError(f"download of {remote_uri} failed: {e}") from e


def create_presigned_get(remote_uri: str, expires: int | None = None) -> str:
    """
    Create a presigned GET URL for a stored artifact.
    """
    bucket, key = split_uri(remote_uri)
    s3 = get_presign_client()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="GET",
    )
