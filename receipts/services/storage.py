import logging
import uuid

import boto3
from botocore.config import Config

from receipts.config import settings

logger = logging.getLogger(__name__)


class BlobStore:
    @staticmethod
    def is_configured() -> bool:
        return bool(
            settings.s3_endpoint_url
            and settings.s3_access_key
            and settings.s3_secret_key
        )

    @staticmethod
    def _get_client():  # type: ignore[return]
        if not BlobStore.is_configured():
            raise RuntimeError(
                "S3 storage is not configured. "
                "Set S3_ENDPOINT_URL, S3_ACCESS_KEY, and S3_SECRET_KEY."
            )
        return boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            region_name=settings.s3_region,
            config=Config(signature_version="s3v4"),
        )

    @staticmethod
    def generate_storage_key(document_id: str, file_name: str) -> str:
        unique = uuid.uuid4().hex[:12]
        return f"documents/{document_id}/{unique}/{file_name}"

    @staticmethod
    def put(data: bytes, document_id: str, file_name: str, mime_type: str) -> str:
        key = BlobStore.generate_storage_key(str(document_id), file_name)
        client = BlobStore._get_client()
        client.put_object(
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=data,
            ContentType=mime_type,
        )
        logger.info("Stored blob %s (%d bytes)", key, len(data))
        return key

    @staticmethod
    def delete(storage_key: str) -> None:
        client = BlobStore._get_client()
        client.delete_object(Bucket=settings.s3_bucket_name, Key=storage_key)
        logger.info("Deleted blob %s", storage_key)

    @staticmethod
    def get(storage_key: str) -> bytes:
        client = BlobStore._get_client()
        response = client.get_object(Bucket=settings.s3_bucket_name, Key=storage_key)
        return response["Body"].read()

    @staticmethod
    def generate_download_url(storage_key: str, file_name: str | None = None) -> str:
        client = BlobStore._get_client()
        params = {
            "Bucket": settings.s3_bucket_name,
            "Key": storage_key,
        }
        if file_name:
            params["ResponseContentDisposition"] = f'inline; filename="{file_name}"'
        url: str = client.generate_presigned_url(
            "get_object",
            Params=params,
            ExpiresIn=settings.s3_presigned_url_expiry,
        )
        return url


storage = BlobStore()
