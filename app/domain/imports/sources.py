"""
Row source adapter: turns an uploaded file name into a byte stream plus the
number of data rows it holds, for either local uploads or object storage.
"""
import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, Optional, Tuple

from app.core.config import settings
from app.domain.imports.errors import TransportError
from app.integrations import storage

logger = logging.getLogger(__name__)

UPLOAD_TYPE_LOCAL = "local"
UPLOAD_TYPE_REMOTE = "AWS"


@dataclass(frozen=True)
class RowSource:
    file_name: str
    upload_type: str = UPLOAD_TYPE_LOCAL

    @property
    def is_remote(self) -> bool:
        return self.upload_type == UPLOAD_TYPE_REMOTE

    @property
    def local_path(self) -> str:
        return get_local_path(self.file_name)


def get_local_path(file_name: str, uploads_folder: Optional[str] = None) -> str:
    return os.path.join(uploads_folder or settings.uploads_folder, file_name)


def count_local_rows(file_path: str) -> int:
    """
    Count data rows in a local CSV with a line-oriented scan.

    The header line is excluded; an empty file counts as zero rows. Blank and
    whitespace-only lines are skipped, as the CSV parser skips them too.
    """
    total = 0
    with open(file_path, "rb") as handle:
        for line in handle:
            if line.strip():
                total += 1

    return max(total - 1, 0)


def open_row_source(source: RowSource) -> Tuple[BinaryIO, int]:
    """
    Open ``source`` and count its rows before any row is streamed.

    Returns:
        (binary stream, total data rows excluding the header)

    Raises:
        TransportError: If the file cannot be read or counted. Not retried.
    """
    if source.is_remote:
        bucket = settings.storage_bucket_name
        try:
            client = storage.get_storage_client()
            total = storage.count_csv_records(source.file_name, bucket=bucket, client=client)
            stream = storage.open_object_stream(source.file_name, bucket=bucket, client=client)
        except (storage.StorageError, ValueError) as e:
            logger.error("Failed to open remote import file %s/%s: %s", bucket, source.file_name, e)
            raise TransportError(str(e)) from e

        logger.info("Opened remote import file %s/%s (%d rows)", bucket, source.file_name, total)
        return stream, total

    file_path = source.local_path
    try:
        total = count_local_rows(file_path)
        stream = open(file_path, "rb")
    except OSError as e:
        logger.error("Failed to open local import file %s: %s", file_path, e)
        raise TransportError(f"Unable to read {source.file_name}: {e.strerror or e}") from e

    logger.info("Opened local import file %s (%d rows)", file_path, total)
    return stream, total


def delete_source_file(source: RowSource) -> bool:
    """Remove the uploaded file once its import has finished. Failures are logged."""
    if source.is_remote:
        deleted = storage.delete_file(source.file_name)
    else:
        try:
            os.remove(source.local_path)
            deleted = True
        except FileNotFoundError:
            deleted = False
        except OSError as e:
            logger.error("Failed to delete local import file %s: %s", source.local_path, e)
            deleted = False

    if deleted:
        logger.info("Deleted import source file %s", source.file_name)
    return deleted
