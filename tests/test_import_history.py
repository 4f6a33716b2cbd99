import pytest

from app.domain.imports import history
from app.domain.imports.errors import FatalInputError


def test_new_history_is_pending_with_zero_counters():
    record = history.create_import_history("customer", "user-1")

    stored = history.get_import_history(record["id"])
    assert stored["status"] == history.STATUS_PENDING
    assert stored["total"] is None
    assert (stored["success"], stored["failed"], stored["percentage"]) == (0, 0, 0.0)
    assert stored["error_msgs"] == []
    assert stored["ids"] == []


def test_set_total_is_recorded_once_and_starts_progress():
    record = history.create_import_history("customer", "user-1")

    history.set_total(record["id"], 10)
    history.set_total(record["id"], 99)

    stored = history.get_import_history(record["id"])
    assert stored["total"] == 10
    assert stored["status"] == history.STATUS_IN_PROGRESS


def test_counters_are_additive():
    record = history.create_import_history("company", "user-1")

    history.increment_counters(record["id"], success=2, percentage=20.0)
    history.increment_counters(record["id"], failed=1)
    history.increment_counters(record["id"], success=3, percentage=30.0)

    stored = history.get_import_history(record["id"])
    assert (stored["success"], stored["failed"], stored["percentage"]) == (5, 1, 50.0)


def test_counters_never_decrement():
    record = history.create_import_history("company", "user-1")

    with pytest.raises(ValueError):
        history.increment_counters(record["id"], success=-1)


def test_errors_and_record_ids_are_appended_in_order():
    record = history.create_import_history("customer", "user-1")

    history.append_errors(record["id"], ["Duplicated email: a@example.com"])
    history.append_errors(record["id"], ["Duplicated code: C-1", "Duplicated phone: 1"])
    history.add_record_ids(record["id"], ["r1", "r2", "r3"])
    removed = history.pull_record_ids(record["id"], ["r2", "missing"])

    stored = history.get_import_history(record["id"])
    assert stored["error_msgs"] == [
        "Duplicated email: a@example.com",
        "Duplicated code: C-1",
        "Duplicated phone: 1",
    ]
    assert removed == 1
    assert stored["ids"] == ["r1", "r3"]


def test_mark_done_requires_every_row_accounted_for():
    record = history.create_import_history("customer", "user-1")
    history.set_total(record["id"], 3)
    history.increment_counters(record["id"], success=2, percentage=66.667)

    assert history.mark_done(record["id"]) is False
    assert history.get_import_history(record["id"])["status"] == history.STATUS_IN_PROGRESS

    history.increment_counters(record["id"], failed=1)

    assert history.mark_done(record["id"]) is True
    assert history.mark_done(record["id"]) is False
    stored = history.get_import_history(record["id"])
    assert stored["status"] == history.STATUS_DONE
    assert stored["percentage"] == 100.0


def test_removed_history_never_becomes_done():
    record = history.create_import_history("customer", "user-1")
    history.set_total(record["id"], 0)
    history.mark_removed(record["id"])

    assert history.mark_done(record["id"]) is False
    assert history.get_import_history(record["id"])["status"] == history.STATUS_REMOVED


def test_missing_history_raises_fatal_input_error():
    assert history.find_import_history("missing") is None
    with pytest.raises(FatalInputError):
        history.get_import_history("missing")
    with pytest.raises(FatalInputError):
        history.mark_removed("missing")


def test_delete_import_history_drops_children():
    record = history.create_import_history("customer", "user-1")
    history.append_errors(record["id"], ["boom"])
    history.add_record_ids(record["id"], ["r1"])

    assert history.delete_import_history(record["id"]) is True
    assert history.find_import_history(record["id"]) is None
    assert history.get_record_ids(record["id"]) == []
    assert history.delete_import_history(record["id"]) is False


def test_serialized_history_uses_external_field_names_and_clamps_percentage():
    record = history.create_import_history("lead", "user-7")
    history.increment_counters(record["id"], success=1, percentage=100.0004)
    history.append_errors(record["id"], ["Duplicated email: x@example.com"])

    serialized = history.serialize_import_history(history.get_import_history(record["id"]))

    assert serialized["_id"] == record["id"]
    assert serialized["contentType"] == "lead"
    assert serialized["userId"] == "user-7"
    assert serialized["percentage"] == 100.0
    assert serialized["errorMsgs"] == ["Duplicated email: x@example.com"]
    assert set(serialized) == {
        "_id", "contentType", "userId", "date", "total", "success",
        "failed", "percentage", "status", "errorMsgs", "ids",
    }
