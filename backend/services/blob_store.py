import logging
from typing import Iterable

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings
from exceptions.exceptions import StorageException

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000


def create_r2_client():
    """Create and return a boto3 S3 client configured for Cloudflare R2"""

    return boto3.client(
        's3',
        endpoint_url=settings.R2_ENDPOINT_URL,
        aws_access_key_id=settings.R2_ACCESS_KEY_ID,
        aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
        region_name='auto'
    )


class BlobStore:
    """Chunk bytes in an S3 compatible bucket. Keys are opaque to callers."""

    def __init__(self, s3_client=None, bucket: str = None):
        self.s3_client = s3_client or create_r2_client()
        self.bucket = bucket or settings.R2_BUCKET_NAME

    def put(self, path: str, data: bytes, content_type: str = None) -> None:
        params = {
            'Bucket': self.bucket,
            'Key': path,
            'Body': data,
        }
        if content_type:
            params['ContentType'] = content_type

        try:
            self.s3_client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise StorageException(f"Failed to write blob {path}: {str(e)}")

    def get(self, path: str) -> bytes:
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=path)
            body = response['Body']
            try:
                return body.read()
            finally:
                body.close()
        except (ClientError, BotoCoreError) as e:
            raise StorageException(f"Failed to read blob {path}: {str(e)}")

    def delete_many(self, paths: Iterable[str]) -> list[str]:
        """
        Delete blobs in batches.

        Returns:
            Paths that could not be deleted. Missing keys count as deleted.
        """
        paths = list(paths)
        failed = []

        for start in range(0, len(paths), DELETE_BATCH_SIZE):
            batch = paths[start:start + DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket,
                    Delete={
                        'Objects': [{'Key': path} for path in batch],
                        'Quiet': True
                    }
                )
            except (ClientError, BotoCoreError) as e:
                logger.warning("Batch delete of %d blobs failed: %s", len(batch), e)
                failed.extend(batch)
                continue

            for error in response.get('Errors', []):
                if error.get('Code') == 'NoSuchKey':
                    continue
                logger.warning("Failed to delete blob %s: %s", error.get('Key'), error.get('Message'))
                failed.append(error.get('Key'))

        return failed
