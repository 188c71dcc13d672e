"""
Asset storage for task media (images for asr, audio for transcription).

Append-only from the engine's point of view: keys are never reused and
S3Storage refuses to overwrite an existing object.
"""
import re
from abc import ABC, abstractmethod
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import config
from .errors import StorageError
from .logging import logger


def sanitize_filename(name: str) -> str:
    """Strip directories and replace anything outside [A-Za-z0-9._-] with '_'."""
    base = name.rsplit('/', 1)[-1]
    return re.sub(r'[^a-zA-Z0-9._-]', '_', base) or 'file'


class Storage(ABC):
    """Blob storage capability: upload bytes, get back a public reference."""

    @abstractmethod
    def put(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes under path.

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: if the upload failed
        """


class S3Storage(Storage):

    def __init__(self, bucket: Optional[str] = None, s3_client=None, public_base_url: Optional[str] = None):
        self.bucket = bucket if bucket is not None else config.MEDIA_BUCKET
        self.public_base_url = (public_base_url if public_base_url is not None
                                else config.MEDIA_PUBLIC_BASE_URL)
        self.s3_client = s3_client or boto3.client(
            's3',
            region_name=config.AWS_REGION,
            config=BotoConfig(signature_version='s3v4')
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def put(self, path: str, data: bytes, content_type: str) -> str:
        if not self.bucket:
            raise StorageError('No MEDIA_BUCKET configured')

        try:
            self.s3_client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl='max-age=3600',
                IfNoneMatch='*',
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            logger.error(f"Error uploading {path} to {self.bucket}: {e}")
            if error_code == 'PreconditionFailed':
                raise StorageError(f"Object already exists: {path}")
            raise StorageError(f"Storage upload failed: {error_code or e}")
        except BotoCoreError as e:
            logger.error(f"Error uploading {path} to {self.bucket}: {e}")
            raise StorageError(f"Storage upload failed: {e}")

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{path}")
        return self.public_url(path)
