"""
Import history tracking for CSV bulk imports.

Each import request owns one ``import_histories`` row holding its progress
counters and status. Error messages and created record ids live in append-only
child tables so that concurrent batches (and concurrent imports) never clobber
each other: counters are only ever changed with additive ``col = col + :n``
updates and lists only ever gain or lose individual rows.

Status lifecycle::

    Pending -> InProgress -> Done
        \\_________\\________-> Removed (set externally, record deleted once workers drain)
"""
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, delete, select, update
from sqlalchemy.orm import Session

from app.db.session import Base, get_session_local
from app.domain.imports.errors import FatalInputError

logger = logging.getLogger(__name__)

STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "InProgress"
STATUS_DONE = "Done"
STATUS_REMOVED = "Removed"

IMPORT_HISTORY_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_DONE, STATUS_REMOVED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportHistory(Base):
    __tablename__ = "import_histories"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    content_type = Column(String(50), nullable=False, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    date = Column(DateTime(timezone=True), default=_utcnow)
    total = Column(Integer, nullable=True)
    success = Column(Integer, nullable=False, default=0)
    failed = Column(Integer, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)


class ImportHistoryError(Base):
    __tablename__ = "import_history_errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    import_history_id = Column(
        String(36), ForeignKey("import_histories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class ImportHistoryRecord(Base):
    __tablename__ = "import_history_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    import_history_id = Column(
        String(36), ForeignKey("import_histories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    record_id = Column(String(36), nullable=False, index=True)


@contextmanager
def session_scope(session: Optional[Session] = None) -> Iterator[Session]:
    """
    Yield ``session`` untouched when the caller owns a transaction, otherwise
    open a short-lived session that commits on success and rolls back on error.
    """
    if session is not None:
        yield session
        return

    db = get_session_local()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _row_to_history(row: ImportHistory, error_msgs: List[str], ids: List[str]) -> Dict[str, Any]:
    return {
        "id": row.id,
        "content_type": row.content_type,
        "user_id": row.user_id,
        "date": row.date,
        "total": row.total,
        "success": row.success or 0,
        "failed": row.failed or 0,
        "percentage": row.percentage or 0.0,
        "status": row.status,
        "error_msgs": error_msgs,
        "ids": ids,
    }


def create_import_history(content_type: str, user_id: Optional[str], session: Optional[Session] = None) -> Dict[str, Any]:
    """Persist a new Pending import history and return it."""
    with session_scope(session) as db:
        row = ImportHistory(
            content_type=content_type,
            user_id=user_id,
            date=_utcnow(),
            success=0,
            failed=0,
            percentage=0.0,
            status=STATUS_PENDING,
        )
        db.add(row)
        db.flush()
        logger.info("Created import history %s (content_type=%s user=%s)", row.id, content_type, user_id)
        return _row_to_history(row, [], [])


def find_import_history(import_history_id: str, session: Optional[Session] = None) -> Optional[Dict[str, Any]]:
    """Fetch a single import history with its error list and record ids, or None."""
    with session_scope(session) as db:
        row = db.get(ImportHistory, import_history_id, populate_existing=True)
        if row is None:
            return None

        error_msgs = list(
            db.execute(
                select(ImportHistoryError.message)
                .where(ImportHistoryError.import_history_id == import_history_id)
                .order_by(ImportHistoryError.id)
            ).scalars()
        )
        return _row_to_history(row, error_msgs, get_record_ids(import_history_id, session=db))


def get_import_history(import_history_id: str, session: Optional[Session] = None) -> Dict[str, Any]:
    """Like :func:`find_import_history` but raises when the record is missing."""
    record = find_import_history(import_history_id, session=session)
    if record is None:
        raise FatalInputError("Import history not found")
    return record


def get_record_ids(import_history_id: str, session: Optional[Session] = None) -> List[str]:
    with session_scope(session) as db:
        return list(
            db.execute(
                select(ImportHistoryRecord.record_id)
                .where(ImportHistoryRecord.import_history_id == import_history_id)
                .order_by(ImportHistoryRecord.id)
            ).scalars()
        )


def set_total(import_history_id: str, total: int, session: Optional[Session] = None) -> None:
    """Record the row total once and move a Pending history to InProgress."""
    with session_scope(session) as db:
        db.execute(
            update(ImportHistory)
            .where(ImportHistory.id == import_history_id, ImportHistory.total.is_(None))
            .values(total=total)
        )
        db.execute(
            update(ImportHistory)
            .where(ImportHistory.id == import_history_id, ImportHistory.status == STATUS_PENDING)
            .values(status=STATUS_IN_PROGRESS)
        )


def increment_counters(
    import_history_id: str,
    *,
    success: int = 0,
    failed: int = 0,
    percentage: float = 0.0,
    session: Optional[Session] = None
) -> None:
    """Add to the success/failed/percentage counters. Never decrements."""
    if success < 0 or failed < 0 or percentage < 0:
        raise ValueError("Import history counters can only be incremented")

    if not (success or failed or percentage):
        return

    with session_scope(session) as db:
        db.execute(
            update(ImportHistory)
            .where(ImportHistory.id == import_history_id)
            .values(
                success=ImportHistory.success + success,
                failed=ImportHistory.failed + failed,
                percentage=ImportHistory.percentage + percentage,
            )
        )


def append_errors(import_history_id: str, messages: Iterable[str], session: Optional[Session] = None) -> None:
    """Append error messages to the history, preserving order."""
    rows = [
        ImportHistoryError(import_history_id=import_history_id, message=str(message))
        for message in messages
    ]
    if not rows:
        return

    with session_scope(session) as db:
        db.add_all(rows)


def add_record_ids(import_history_id: str, record_ids: Iterable[str], session: Optional[Session] = None) -> None:
    rows = [
        ImportHistoryRecord(import_history_id=import_history_id, record_id=record_id)
        for record_id in record_ids
    ]
    if not rows:
        return

    with session_scope(session) as db:
        db.add_all(rows)


def pull_record_ids(import_history_id: str, record_ids: Iterable[str], session: Optional[Session] = None) -> int:
    """Remove the given record ids from the history. Returns how many were removed."""
    record_ids = list(record_ids)
    if not record_ids:
        return 0

    with session_scope(session) as db:
        result = db.execute(
            delete(ImportHistoryRecord).where(
                ImportHistoryRecord.import_history_id == import_history_id,
                ImportHistoryRecord.record_id.in_(record_ids),
            )
        )
        return result.rowcount or 0


def is_complete(record: Dict[str, Any]) -> bool:
    """True once every counted row is accounted for as success or failure."""
    total = record.get("total")
    if total is None:
        return False
    return (record.get("success") or 0) + (record.get("failed") or 0) == total


def mark_done(import_history_id: str, session: Optional[Session] = None) -> bool:
    """
    Move the history to Done with percentage 100 when ``success + failed == total``.

    The condition is evaluated inside the UPDATE so a concurrent counter change
    cannot slip between the check and the write. Returns whether it transitioned.
    """
    with session_scope(session) as db:
        result = db.execute(
            update(ImportHistory)
            .where(
                ImportHistory.id == import_history_id,
                ImportHistory.total.is_not(None),
                ImportHistory.success + ImportHistory.failed == ImportHistory.total,
                ImportHistory.status.in_((STATUS_PENDING, STATUS_IN_PROGRESS)),
            )
            .values(status=STATUS_DONE, percentage=100.0)
        )
        transitioned = (result.rowcount or 0) > 0

    if transitioned:
        logger.info("Import history %s is Done", import_history_id)
    return transitioned


def mark_removed(import_history_id: str, session: Optional[Session] = None) -> None:
    with session_scope(session) as db:
        result = db.execute(
            update(ImportHistory)
            .where(ImportHistory.id == import_history_id)
            .values(status=STATUS_REMOVED)
        )
        if not result.rowcount:
            raise FatalInputError("Import history not found")

    logger.info("Import history %s marked Removed", import_history_id)


def delete_import_history(import_history_id: str, session: Optional[Session] = None) -> bool:
    """Delete the history and its child rows. Returns whether a record was deleted."""
    with session_scope(session) as db:
        db.execute(delete(ImportHistoryError).where(ImportHistoryError.import_history_id == import_history_id))
        db.execute(delete(ImportHistoryRecord).where(ImportHistoryRecord.import_history_id == import_history_id))
        result = db.execute(delete(ImportHistory).where(ImportHistory.id == import_history_id))
        deleted = (result.rowcount or 0) > 0

    if deleted:
        logger.info("Deleted import history %s", import_history_id)
    return deleted


def serialize_import_history(record: Dict[str, Any]) -> Dict[str, Any]:
    """Render a history in the external ``{_id, contentType, ...}`` record shape."""
    return {
        "_id": record["id"],
        "contentType": record["content_type"],
        "userId": record["user_id"],
        "date": record["date"],
        "total": record["total"],
        "success": record["success"],
        "failed": record["failed"],
        "percentage": min(round(record["percentage"], 3), 100.0),
        "status": record["status"],
        "errorMsgs": list(record["error_msgs"]),
        "ids": list(record["ids"]),
    }
