"""
Image hosting service for uploaded PDFs.

This module provides functionality for:
- Uploading the original PDF to S3 under a per-magazine namespace
- Building page image URLs against a transformation endpoint
- Deleting the stored original when a magazine is removed

Page images are never stored. The transformation endpoint (configured with
IMAGE_BASE_URL, e.g. a Cloudinary auto-upload mapping of the bucket) renders
page N of the stored PDF on request from a URL of the form::

    {IMAGE_BASE_URL}/pg_{N},w_{W},h_{H},c_limit,q_{Q}/{public_id}.{format}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import HostingUploadFailure
from .models import PageImageOptions
from .utils import sanitize_filename

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class HostedFile:
    """Reference to a stored original: public URL plus hosting-side id."""

    url: str
    public_id: str


class S3Hosting:
    """
    Stores originals in an S3 bucket and synthesizes page image URLs.

    The public id of a stored PDF is its object key without the ``.pdf``
    suffix, which is also the path the transformation endpoint serves it under.
    """

    def __init__(
        self,
        bucket: str,
        image_base_url: str,
        prefix: str = "flipbook",
        client=None,
    ) -> None:
        self.bucket = bucket
        self.image_base_url = image_base_url.rstrip("/")
        self.prefix = prefix.strip("/")
        self._client = client

    @property
    def client(self):
        """
        Get or create the S3 client.

        Note:
            Credentials are not probed here; errors surface on the first
            actual operation.
        """
        if self._client is None:
            self._client = boto3.client("s3")
        return self._client

    def is_configured(self) -> bool:
        return bool(self.bucket) and bool(self.image_base_url)

    @staticmethod
    def object_key(public_id: str) -> str:
        return f"{public_id}.pdf"

    def object_url(self, key: str) -> str:
        endpoint = (self.client.meta.endpoint_url or "https://s3.amazonaws.com").rstrip("/")
        return f"{endpoint}/{self.bucket}/{key}"

    def upload_original(self, data: bytes, namespace: str, filename: str) -> HostedFile:
        """
        Upload a PDF under ``{prefix}/{namespace}/``.

        Raises:
            HostingUploadFailure: if hosting is not configured or S3 rejects the upload
        """
        if not self.is_configured():
            raise HostingUploadFailure(
                "Failed to upload PDF: S3_BUCKET_NAME and IMAGE_BASE_URL must be configured"
            )

        stem = sanitize_filename(filename).rsplit(".", 1)[0] or "document"
        public_id = "/".join(part for part in (self.prefix, namespace, stem) if part)
        key = self.object_key(public_id)

        try:
            logger.info(f"Uploading original to s3://{self.bucket}/{key}")
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=PDF_CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 upload failed: {e}")
            raise HostingUploadFailure(f"Failed to upload PDF: {e}") from e

        logger.info(f"Upload successful: s3://{self.bucket}/{key}")
        return HostedFile(url=self.object_url(key), public_id=public_id)

    def build_page_image_url(self, public_id: str, page_number: int, options: PageImageOptions) -> str:
        """Return the URL that renders ``page_number`` (1-based) of a stored PDF."""
        if page_number < 1:
            raise ValueError("page_number is 1-based")
        transformation = (
            f"pg_{page_number},w_{options.width},h_{options.height},"
            f"c_limit,q_{options.quality}"
        )
        return f"{self.image_base_url}/{transformation}/{public_id}.{options.format}"

    def delete_original(self, public_id: str) -> bool:
        """
        Delete a stored original.

        Returns:
            True if S3 accepted the delete, False otherwise (the error is logged)
        """
        if not self.bucket:
            logger.warning("S3_BUCKET_NAME not configured, skipping delete")
            return False

        key = self.object_key(public_id)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 delete failed for {key}: {e}")
            return False
        logger.info(f"Deleted s3://{self.bucket}/{key}")
        return True

    def check_connection(self) -> Optional[bool]:
        """
        Probe the bucket with ``head_bucket``.

        Returns:
            None when no bucket is configured, else whether the probe succeeded
        """
        if not self.bucket:
            logger.warning("S3_BUCKET_NAME not configured")
            return None
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 bucket check failed: {e}")
            return False
        logger.info(f"S3 bucket reachable: {self.bucket}")
        return True
