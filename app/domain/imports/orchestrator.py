"""
CSV bulk import orchestration.

``ImportOrchestrator`` ties the pipeline together:

1. ``receive_import_create`` creates an import history, then streams the file
   on a background thread. Each batch is validated against a freshly rebuilt
   duplicate snapshot, its valid rows are persisted by a ``bulkInsert`` worker
   (awaited before the stream advances), and the history counters are bumped.
2. ``receive_import_remove`` deletes every record an import created, one
   ``importHistoryRemove`` worker per chunk, and drops the history once it is
   marked Removed.
3. ``receive_import_cancel`` cancels every tracked worker.

Whenever the worker pool drains, the orchestrator finalizes completed imports
(Done + source file deletion) and deletes histories marked Removed.
"""
import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.core.logging_config import bind_import_id
from app.domain.imports import history as import_history
from app.domain.imports.errors import FatalInputError, WorkerCancelledError
from app.domain.imports.fields import check_field_names
from app.domain.imports.sources import RowSource, delete_source_file, open_row_source
from app.domain.imports.streamer import import_bulk_stream
from app.domain.imports.utils import CONTENT_TYPES, chunk_ids, get_percentage
from app.domain.imports.validation import before_import, is_row_valid
from app.domain.imports.workers import WorkerDispatcher

logger = logging.getLogger(__name__)

BULK_INSERT_WORKER = "bulkInsert"
IMPORT_HISTORY_REMOVE_WORKER = "importHistoryRemove"


class ImportRun:
    """Mutable state of one running import, owned by its stream thread."""

    def __init__(self, import_history_id: str, content_type: str, source: RowSource, content: Dict[str, Any]):
        self.import_history_id = import_history_id
        self.content_type = content_type
        self.source = source
        self.scope_brand_ids = content.get("scopeBrandIds") or []
        self.user = content.get("user") or {}
        self.total_set = False
        self.field_names: Optional[List[str]] = None
        self.properties: Optional[List[Dict[str, str]]] = None
        self.validation_values = None
        self.thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None
        self.finished = threading.Event()


class ImportOrchestrator:
    # Abort errors kept for get_error, oldest evicted first.
    max_tracked_errors = 100

    def __init__(self, dispatcher: Optional[WorkerDispatcher] = None, bulk_limit: Optional[int] = None):
        self.dispatcher = dispatcher or WorkerDispatcher()
        self.bulk_limit = bulk_limit or settings.import_bulk_limit
        self._runs: Dict[str, ImportRun] = {}
        self._pending_removals: set = set()
        self._errors: "OrderedDict[str, BaseException]" = OrderedDict()
        self._lock = threading.Lock()
        self.dispatcher.set_handle_end(self.handle_on_end_worker)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def receive_import_create(self, content: Dict[str, Any]) -> Dict[str, str]:
        """
        Start importing a CSV file. Returns as soon as the history exists;
        streaming continues on a background thread.

        Raises:
            FatalInputError: For a non-CSV file type or an unknown content type
        """
        file_name = content.get("fileName")
        content_type = content.get("type")
        file_type = content.get("fileType")
        upload_type = content.get("uploadType") or "local"

        if file_type != "csv":
            raise FatalInputError("Invalid file type")
        if content_type not in CONTENT_TYPES:
            raise FatalInputError(f"Invalid content type: {content_type}")
        if not file_name:
            raise FatalInputError("File name is required")

        user = content.get("user") or {}
        record = import_history.create_import_history(content_type, user.get("_id"))
        run = ImportRun(record["id"], content_type, RowSource(file_name, upload_type), content)

        with self._lock:
            self._runs[run.import_history_id] = run
        self.dispatcher.set_handle_end(self.handle_on_end_worker)

        # collect initial validation values
        run.validation_values = before_import(content_type)

        run.thread = threading.Thread(
            target=self._stream_import,
            args=(run,),
            name=f"import-stream-{run.import_history_id[:8]}",
            daemon=True,
        )
        run.thread.start()

        logger.info(
            "Accepted %s import %s from %s (%s)", content_type, run.import_history_id, file_name, upload_type
        )
        return {"id": run.import_history_id}

    def _stream_import(self, run: ImportRun) -> None:
        with bind_import_id(run.import_history_id):
            self._run_stream(run)

    def _run_stream(self, run: ImportRun) -> None:
        try:
            stream, total = open_row_source(run.source)

            def handle_bulk_operation(rows: List[Dict[str, str]], total_rows: int) -> None:
                self.handle_bulk_operation(run, rows, total_rows)

            import_bulk_stream(stream, total, self.bulk_limit, handle_bulk_operation)
            self.finalize_import(run.import_history_id)
        except WorkerCancelledError as e:
            run.error = e
            logger.warning("Import %s stopped: %s", run.import_history_id, e)
        except Exception as e:
            run.error = e
            logger.error("Import %s aborted: %s", run.import_history_id, e)
            self._record_abort(run, e)
        finally:
            with self._lock:
                self._runs.pop(run.import_history_id, None)
                if run.error is not None:
                    self._errors[run.import_history_id] = run.error
                    while len(self._errors) > self.max_tracked_errors:
                        self._errors.popitem(last=False)
            run.finished.set()

    def _record_abort(self, run: ImportRun, error: Exception) -> None:
        try:
            import_history.append_errors(run.import_history_id, [str(error)])
        except Exception as e:
            logger.error("Could not record abort of import %s: %s", run.import_history_id, e)

    def handle_bulk_operation(self, run: ImportRun, rows: List[Dict[str, str]], total_rows: int) -> None:
        """Validate one batch, persist its valid rows and update the history."""
        try:
            if not run.total_set:
                import_history.set_total(run.import_history_id, total_rows)
                run.total_set = True

            if len(rows) == 0:
                logger.debug("Import %s: empty batch, nothing to process", run.import_history_id)
                return

            if run.field_names is None:
                run.field_names = list(rows[0].keys())
                run.properties = check_field_names(run.content_type, run.field_names)

            error_msgs: List[str] = []
            result: List[List[Any]] = []

            for row in rows:
                errors = is_row_valid(run.content_type, row, run.validation_values)
                if errors:
                    error_msgs.extend(str(error) for error in errors)
                    continue
                result.append([row.get(name, "") for name in run.field_names])

            failed = len(rows) - len(result)

            # Failures are recorded before the insert worker runs so that the
            # drain hook it triggers sees complete counters.
            if failed:
                import_history.increment_counters(run.import_history_id, failed=failed)
                import_history.append_errors(run.import_history_id, error_msgs)

            if result:
                self.dispatcher.run_worker(
                    BULK_INSERT_WORKER,
                    {
                        "scope_brand_ids": run.scope_brand_ids,
                        "user": run.user,
                        "content_type": run.content_type,
                        "properties": run.properties,
                        "import_history_id": run.import_history_id,
                        "result": result,
                        "percentage": get_percentage(len(result), total_rows),
                    },
                )

            run.validation_values = before_import(run.content_type)

            logger.info(
                "Import %s: batch of %d rows (%d valid, %d failed)",
                run.import_history_id,
                len(rows),
                len(result),
                failed,
            )
        except Exception as e:
            logger.error("Import %s: batch failed: %s", run.import_history_id, e)
            raise

    def finalize_import(self, import_history_id: str) -> bool:
        """Mark the import Done and delete its source file once every row is counted."""
        record = import_history.find_import_history(import_history_id)
        if record is None:
            logger.warning("Import history %s not found during finalization", import_history_id)
            return False

        if not import_history.is_complete(record):
            return False

        if not import_history.mark_done(import_history_id):
            return False

        with self._lock:
            run = self._runs.get(import_history_id)
        if run is not None:
            delete_source_file(run.source)
        return True

    # ------------------------------------------------------------------
    # Remove / cancel
    # ------------------------------------------------------------------

    def receive_import_remove(self, content: Dict[str, Any]) -> Dict[str, str]:
        """
        Delete every record created by an import, one worker per chunk.

        Raises:
            FatalInputError: When the import history does not exist
        """
        content_type = content.get("contentType")
        import_history_id = content.get("importHistoryId")

        try:
            if not import_history_id:
                raise FatalInputError("Import history not found")

            record = import_history.get_import_history(import_history_id)
            content_type = content_type or record["content_type"]

            with self._lock:
                self._pending_removals.add(import_history_id)
            self.dispatcher.set_handle_end(self.handle_on_end_worker)

            try:
                for result in chunk_ids(record["ids"], self.bulk_limit):
                    self.dispatcher.run_worker(
                        IMPORT_HISTORY_REMOVE_WORKER,
                        {
                            "content_type": content_type,
                            "import_history_id": import_history_id,
                            "result": result,
                        },
                    )

                self._delete_if_removed(import_history_id)
            finally:
                with self._lock:
                    self._pending_removals.discard(import_history_id)
            return {"status": "ok"}
        except Exception as e:
            logger.error("Failed to remove import %s: %s", import_history_id, e)
            raise

    def receive_import_cancel(self) -> Dict[str, str]:
        self.dispatcher.remove_workers()
        return {"status": "ok"}

    def _delete_if_removed(self, import_history_id: str) -> bool:
        record = import_history.find_import_history(import_history_id)
        if record is None or record["status"] != import_history.STATUS_REMOVED:
            return False

        with self._lock:
            self._pending_removals.discard(import_history_id)
        return import_history.delete_import_history(import_history_id)

    def handle_on_end_worker(self) -> None:
        """Drain hook: finalize completed imports, delete histories marked Removed."""
        with self._lock:
            running = list(self._runs)
            removals = list(self._pending_removals)

        for import_history_id in running:
            self.finalize_import(import_history_id)

        for import_history_id in removals:
            self._delete_if_removed(import_history_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def wait(self, import_history_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the import's stream thread is done. Returns False on timeout."""
        with self._lock:
            run = self._runs.get(import_history_id)
        if run is None:
            return True
        return run.finished.wait(timeout)

    def get_error(self, import_history_id: str) -> Optional[BaseException]:
        """The exception that aborted an import's stream, if any."""
        with self._lock:
            return self._errors.get(import_history_id)

    def shutdown(self, wait: bool = True) -> None:
        self.dispatcher.shutdown(wait=wait)


_orchestrator: Optional[ImportOrchestrator] = None
_orchestrator_lock = threading.Lock()


def get_orchestrator() -> ImportOrchestrator:
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = ImportOrchestrator()
        return _orchestrator


def receive_import_create(content: Dict[str, Any]) -> Dict[str, str]:
    return get_orchestrator().receive_import_create(content)


def receive_import_remove(content: Dict[str, Any]) -> Dict[str, str]:
    return get_orchestrator().receive_import_remove(content)


def receive_import_cancel() -> Dict[str, str]:
    return get_orchestrator().receive_import_cancel()


def shutdown_orchestrator(wait: bool = True) -> None:
    """Stop the shared orchestrator's worker pool; the next call builds a fresh one."""
    global _orchestrator
    with _orchestrator_lock:
        orchestrator, _orchestrator = _orchestrator, None
    if orchestrator is not None:
        orchestrator.shutdown(wait=wait)
