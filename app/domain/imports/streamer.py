"""
CSV batch streamer.

Parses a CSV byte stream in bounded chunks and hands fixed-size batches of rows
to a batch handler. The parser is not advanced while a batch is being handled,
so at most one batch per import is ever in flight and the handler can rely on
every previous batch having been fully persisted.
"""
import logging
import threading
from typing import BinaryIO, Callable, Dict, Iterator, List, Optional

import pandas as pd
from botocore.exceptions import BotoCoreError

from app.domain.imports.errors import TransportError

logger = logging.getLogger(__name__)

Row = Dict[str, str]
BatchHandler = Callable[[List[Row], int], None]


class CsvBatchStreamer:
    """Accumulate parsed rows into batches of ``bulk_limit`` and feed them to a handler."""

    def __init__(
        self,
        stream: BinaryIO,
        total: int,
        bulk_limit: int,
        handle_bulk_operation: BatchHandler,
        encoding: str = "utf-8-sig",
    ):
        if bulk_limit <= 0:
            raise ValueError("bulk_limit must be positive")

        self.stream = stream
        self.total = total
        self.bulk_limit = bulk_limit
        self.handle_bulk_operation = handle_bulk_operation
        self.encoding = encoding
        self.batches_handled = 0
        self.rows_read = 0
        # Binary gate: held for the whole duration of a batch handler call.
        self._gate = threading.Lock()

    def _iter_chunks(self) -> Iterator[pd.DataFrame]:
        try:
            reader = pd.read_csv(
                self.stream,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                encoding=self.encoding,
                chunksize=self.bulk_limit,
            )
        except pd.errors.EmptyDataError:
            logger.info("CSV stream is empty; nothing to import")
            return
        except (pd.errors.ParserError, UnicodeDecodeError, OSError, BotoCoreError) as e:
            logger.error("Failed to read CSV header: %s", e)
            raise TransportError(f"Failed to parse CSV: {e}") from e

        with reader:
            while True:
                try:
                    chunk = next(reader)
                except StopIteration:
                    return
                except (pd.errors.ParserError, UnicodeDecodeError, OSError, BotoCoreError) as e:
                    logger.error("Failed to parse CSV stream after %d rows: %s", self.rows_read, e)
                    raise TransportError(f"Failed to parse CSV: {e}") from e
                yield chunk

    def _dispatch(self, batch: List[Row]) -> None:
        with self._gate:
            self.handle_bulk_operation(batch, self.total)
            self.batches_handled += 1

    def run(self) -> str:
        """
        Stream every row through the handler.

        Returns:
            "success" once the final (possibly empty) batch has been handled

        Raises:
            TransportError: On parse or read failures
            Exception: Whatever the batch handler raises, unchanged
        """
        batch: List[Row] = []

        for chunk in self._iter_chunks():
            chunk.columns = [str(column).strip() for column in chunk.columns]

            for row in chunk.to_dict(orient="records"):
                batch.append(row)
                self.rows_read += 1

                if len(batch) == self.bulk_limit:
                    self._dispatch(batch)
                    batch = []

        # Flush the trailing partial batch through the same handler.
        self._dispatch(batch)

        logger.info(
            "CSV stream finished: %d rows in %d batches (expected %d rows)",
            self.rows_read,
            self.batches_handled,
            self.total,
        )
        return "success"


def import_bulk_stream(
    stream: BinaryIO,
    total: int,
    bulk_limit: int,
    handle_bulk_operation: BatchHandler,
    encoding: Optional[str] = None,
) -> str:
    """Convenience wrapper around :class:`CsvBatchStreamer`. Always closes ``stream``."""
    streamer = CsvBatchStreamer(
        stream,
        total,
        bulk_limit,
        handle_bulk_operation,
        encoding=encoding or "utf-8-sig",
    )
    try:
        return streamer.run()
    finally:
        try:
            stream.close()
        except Exception as e:  # pragma: no cover
            logger.warning("Failed to close import stream: %s", e)
