"""
Storage management for podcast audio files.

This module handles file storage using S3-compatible storage (AWS S3, MinIO, etc.).
"""

import io
import os
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ProviderError
from .utils.logger import setup_logger

logger = setup_logger(__name__)

AUDIO_CONTENT_TYPE = "audio/mpeg"


def podcast_object_name(language: str, category_id: str, job_id: str) -> str:
    """Storage key for the audio produced by a generation job."""
    return f"podcasts/{language}/{category_id}/{job_id}.mp3"


class StorageManager:
    """Manage file storage in S3-compatible storage."""

    def __init__(self, s3_client=None):
        """Initialize storage manager with an S3 client built from the environment."""
        self.bucket_name = os.getenv("S3_BUCKET_NAME", "lurkingpods")
        self.endpoint_url = os.getenv("S3_ENDPOINT_URL")  # None for AWS S3
        self.region_name = os.getenv("AWS_REGION", "us-east-1")
        self.public_url_base = os.getenv("S3_PUBLIC_URL_BASE")

        self.s3_client = s3_client or boto3.client(
            "s3",
            endpoint_url=self.endpoint_url,
            region_name=self.region_name,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            config=Config(
                signature_version="s3v4",
                connect_timeout=int(os.getenv("S3_CONNECT_TIMEOUT", "10")),
                read_timeout=int(os.getenv("S3_READ_TIMEOUT", "60")),
                retries={"max_attempts": 3},
            ),
        )

    def ensure_bucket_exists(self):
        """Create the storage bucket if it is missing."""
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            logger.info(f"Bucket {self.bucket_name} exists")
        except ClientError as e:
            if e.response["Error"]["Code"] != "404":
                logger.error(f"Error checking bucket: {str(e)}")
                raise
            if self.endpoint_url or self.region_name == "us-east-1":
                self.s3_client.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3_client.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={"LocationConstraint": self.region_name},
                )
            logger.info(f"Created bucket {self.bucket_name}")

    def upload(self, data: bytes, object_name: str,
               content_type: str = AUDIO_CONTENT_TYPE) -> str:
        """
        Upload bytes to S3.

        Args:
            data: File contents
            object_name: S3 object name
            content_type: MIME type of the file

        Returns:
            Public URL of the uploaded file

        Raises:
            ProviderError: if the upload fails or times out
        """
        try:
            self.s3_client.upload_fileobj(
                io.BytesIO(data),
                self.bucket_name,
                object_name,
                ExtraArgs={
                    "ContentType": content_type,
                    "CacheControl": "max-age=86400",
                },
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {object_name}: {str(e)}")
            raise ProviderError("storage", str(e)) from e

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket_name}/{object_name}")
        return self.get_public_url(object_name)

    def object_name_from_url(self, url: str) -> str:
        """Recover the object key from a public URL returned by ``upload``."""
        if not url.startswith("http"):
            return url
        for base in self._url_bases():
            if url.startswith(base):
                return url[len(base):]
        return url.split("/", 3)[-1]

    def delete_file(self, object_name: str) -> bool:
        """
        Delete a file from S3.

        Args:
            object_name: S3 object name or full public URL

        Returns:
            True if successful, False otherwise
        """
        object_name = self.object_name_from_url(object_name)
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=object_name)
            logger.info(f"Deleted s3://{self.bucket_name}/{object_name}")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete file: {str(e)}")
            return False

    def get_public_url(self, object_name: str) -> str:
        """
        Get public URL for an S3 object.

        Args:
            object_name: S3 object name

        Returns:
            Public URL
        """
        return f"{self._url_bases()[0]}{object_name}"

    def _url_bases(self):
        bases = []
        if self.public_url_base:
            # Custom public URL base (e.g., CloudFront)
            bases.append(f"{self.public_url_base.rstrip('/')}/")
        if self.endpoint_url:
            # MinIO or custom S3
            bases.append(f"{self.endpoint_url.rstrip('/')}/{self.bucket_name}/")
        bases.append(f"https://{self.bucket_name}.s3.{self.region_name}.amazonaws.com/")
        return bases

    def health_check(self) -> bool:
        """
        Check if storage is accessible.

        Returns:
            True if storage is healthy, False otherwise
        """
        try:
            self.s3_client.head_bucket(Bucket=self.bucket_name)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Storage health check failed: {str(e)}")
            return False


_storage_manager: Optional[StorageManager] = None


def get_storage_manager() -> StorageManager:
    """Shared storage manager, created on first use."""
    global _storage_manager
    if _storage_manager is None:
        _storage_manager = StorageManager()
        try:
            _storage_manager.ensure_bucket_exists()
        except (BotoCoreError, ClientError) as e:
            # Uploads fail with ProviderError and /health reports storage down
            logger.error(f"Could not verify bucket {_storage_manager.bucket_name}: {str(e)}")
    return _storage_manager
