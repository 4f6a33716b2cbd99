"""
S3-compatible storage integration for AWS S3, Backblaze B2, MinIO, etc.
Uses boto3 for streaming import files, counting their rows server-side
and cleaning them up once an import finishes.
"""
import logging
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

COUNT_ROWS_EXPRESSION = "SELECT COUNT(*) FROM S3Object"


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Raised when storage connection fails."""
    pass


class StorageDownloadError(StorageError):
    """Raised when reading an object fails."""
    pass


class StorageQueryError(StorageError):
    """Raised when an S3 Select query fails."""
    pass


def get_storage_client():
    """
    Get S3-compatible storage client.

    Returns:
        boto3 S3 client configured for the storage provider

    Raises:
        ValueError: If storage configuration is incomplete
    """
    if not all([settings.storage_access_key_id, settings.storage_secret_access_key, settings.storage_bucket_name]):
        raise ValueError(
            "Storage configuration is incomplete. Please set STORAGE_ACCESS_KEY_ID, "
            "STORAGE_SECRET_ACCESS_KEY, and AWS_BUCKET (or STORAGE_BUCKET_NAME) in your environment."
        )

    config = Config(
        signature_version='s3v4',
        retries={'max_attempts': 3, 'mode': 'standard'}
    )

    client_kwargs = {
        'service_name': 's3',
        'aws_access_key_id': settings.storage_access_key_id,
        'aws_secret_access_key': settings.storage_secret_access_key,
        'config': config,
    }

    # Add endpoint URL for non-AWS providers (B2, MinIO, etc.)
    if settings.storage_endpoint_url:
        client_kwargs['endpoint_url'] = settings.storage_endpoint_url

    if settings.storage_region:
        client_kwargs['region_name'] = settings.storage_region

    try:
        return boto3.client(**client_kwargs)
    except Exception as e:
        logger.error(f"Failed to create storage client: {e}")
        raise StorageConnectionError(f"Failed to connect to storage: {str(e)}")


def open_object_stream(key: str, bucket: Optional[str] = None, client: Any = None):
    """
    Open a streaming reader over an object.

    Args:
        key: Object key (the uploaded file name)
        bucket: Bucket name, defaults to the configured bucket
        client: Optional pre-built S3 client

    Returns:
        A file-like ``StreamingBody`` that reads the object incrementally

    Raises:
        StorageDownloadError: If the object cannot be opened
    """
    try:
        client = client or get_storage_client()
        response = client.get_object(Bucket=bucket or settings.storage_bucket_name, Key=key)
        return response['Body']
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        logger.error(f"Storage read failed: {error_code} - {str(e)}")
        if error_code == 'NoSuchKey':
            raise StorageDownloadError(f"File not found: {key}")
        raise StorageDownloadError(f"Download failed: {error_code}")
    except (BotoCoreError, ValueError) as e:
        logger.error(f"Unexpected error opening {key}: {str(e)}")
        raise StorageDownloadError(f"Download failed: {str(e)}")


def count_csv_records(key: str, bucket: Optional[str] = None, client: Any = None) -> int:
    """
    Count the data rows of a CSV object server-side with S3 Select.

    The header row is consumed by ``FileHeaderInfo=USE`` so the returned count
    excludes it.

    Raises:
        StorageQueryError: If the query fails or returns no count
    """
    try:
        client = client or get_storage_client()
        response = client.select_object_content(
            Bucket=bucket or settings.storage_bucket_name,
            Key=key,
            ExpressionType='SQL',
            Expression=COUNT_ROWS_EXPRESSION,
            InputSerialization={
                'CSV': {
                    'FileHeaderInfo': 'USE',
                    'RecordDelimiter': '\n',
                    'FieldDelimiter': ',',
                }
            },
            OutputSerialization={'CSV': {}},
        )

        payload = b""
        # Records events carry the scalar result; Stats/Progress/End are ignored.
        for event in response['Payload']:
            if 'Records' in event:
                payload += event['Records']['Payload']

        text_value = payload.decode('utf-8').strip()
        if not text_value:
            raise StorageQueryError(f"Row count query returned no result for {key}")
        return int(text_value)

    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        logger.error(f"Row count query failed: {error_code} - {str(e)}")
        raise StorageQueryError(f"Row count query failed: {error_code}")
    except (BotoCoreError, ValueError) as e:
        logger.error(f"Unexpected error counting rows of {key}: {str(e)}")
        raise StorageQueryError(f"Row count query failed: {str(e)}")


def delete_file(key: str, bucket: Optional[str] = None, client: Any = None) -> bool:
    """
    Delete an object from S3-compatible storage.

    Returns:
        True if deletion was successful, False otherwise
    """
    try:
        client = client or get_storage_client()
        client.delete_object(Bucket=bucket or settings.storage_bucket_name, Key=key)
        return True
    except (ClientError, BotoCoreError, StorageError, ValueError) as e:
        logger.error(f"Error deleting file from storage: {str(e)}")
        return False
