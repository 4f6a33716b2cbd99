"""
Pytest configuration and fixtures for the bulk import tests.

Tests run against a throwaway SQLite database unless DATABASE_URL is exported.
Import tables are created before every test and dropped afterwards so each
test sees an empty CRM.
"""

import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="crm-bulk-import-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}")
# Tables are managed by the fixtures below, not by the app lifespan.
os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest

from app.core.config import settings
from app.db.session import Base, create_tables, get_engine, reset_engine
from app.domain.imports.orchestrator import ImportOrchestrator
from app.domain.imports.workers import WorkerDispatcher


@pytest.fixture(autouse=True)
def import_tables():
    """Create every import-related table, then drop them after the test."""
    create_tables()
    yield
    Base.metadata.drop_all(bind=get_engine())


@pytest.fixture(scope="session", autouse=True)
def dispose_engine():
    yield
    reset_engine()


@pytest.fixture
def uploads_folder(tmp_path, monkeypatch):
    folder = tmp_path / "uploads"
    folder.mkdir()
    monkeypatch.setattr(settings, "uploads_folder", str(folder))
    return folder


@pytest.fixture
def orchestrator():
    """Orchestrator with a small batch size so multi-batch paths are exercised."""
    instance = ImportOrchestrator(dispatcher=WorkerDispatcher(max_workers=2), bulk_limit=3)
    yield instance
    instance.shutdown(wait=True)


@pytest.fixture
def write_csv(uploads_folder):
    """Return a helper that writes a CSV into the uploads folder."""
    def _write(file_name, header, rows):
        lines = [",".join(header)] + [",".join(row) for row in rows]
        path = uploads_folder / file_name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path

    return _write
