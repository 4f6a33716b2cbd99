"""
Worker entry points dispatched by the import orchestrator.

``bulk_insert`` persists one validated batch; ``import_history_remove`` deletes
one chunk of previously imported records. Both do all of their writes in a
single transaction and check for cancellation right before committing, so a
cancelled worker leaves neither entities nor history counters behind.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete

from app.core.logging_config import bind_import_id
from app.db.models import BoardItem, Company, Customer, Product
from app.domain.imports.history import add_record_ids, increment_counters, pull_record_ids, session_scope
from app.domain.imports.utils import EMPTY_PLACEHOLDERS, clear_empty_values, generate_pronoun
from app.domain.imports.workers import WorkerContext

logger = logging.getLogger(__name__)

CONTENT_TYPE_MODELS = {
    "customer": Customer,
    "lead": Customer,
    "company": Company,
    "product": Product,
    "deal": BoardItem,
    "task": BoardItem,
    "ticket": BoardItem,
}

NUMERIC_FIELDS = {"size": int, "unit_price": float}


def get_model(content_type: str):
    try:
        return CONTENT_TYPE_MODELS[content_type]
    except KeyError:
        raise ValueError(f"Unsupported content type: {content_type}")


def _coerce_numbers(doc: Dict[str, Any]) -> None:
    for name, cast in NUMERIC_FIELDS.items():
        if name not in doc:
            continue
        try:
            doc[name] = cast(str(doc[name]).replace(",", "").strip())
        except ValueError:
            logger.warning("Dropping non-numeric %s value %r", name, doc[name])
            del doc[name]


def build_document(
    content_type: str,
    properties: Sequence[Dict[str, str]],
    values: Sequence[Any],
    scope_brand_ids: Optional[List[str]] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Turn one positional row into keyword arguments for the entity model."""
    doc: Dict[str, Any] = {}
    custom_field_data = []

    for prop, value in zip(properties, values):
        if prop["type"] == "customProperty":
            if value not in EMPTY_PLACEHOLDERS:
                custom_field_data.append({"field": prop["id"], "value": value})
            continue
        doc[prop["name"]] = value

    clear_empty_values(doc)

    if "pronoun" in doc:
        doc["pronoun"] = generate_pronoun(doc["pronoun"])
        clear_empty_values(doc)

    _coerce_numbers(doc)

    if content_type in ("customer", "lead"):
        doc["state"] = content_type
    elif content_type in ("deal", "task", "ticket"):
        doc["type"] = content_type

    doc["custom_field_data"] = custom_field_data
    doc["scope_brand_ids"] = list(scope_brand_ids or [])
    if user_id:
        doc["owner_id"] = user_id

    return doc


def bulk_insert(payload: Dict[str, Any], context: WorkerContext) -> Dict[str, Any]:
    """Insert a validated batch and credit it to the import history."""
    content_type = payload["content_type"]
    import_history_id = payload["import_history_id"]
    properties = payload["properties"]
    rows = payload.get("result") or []
    user_id = (payload.get("user") or {}).get("_id")

    model = get_model(content_type)

    with bind_import_id(import_history_id), session_scope() as db:
        entities = [
            model(**build_document(content_type, properties, values, payload.get("scope_brand_ids"), user_id))
            for values in rows
        ]
        db.add_all(entities)
        db.flush()
        ids = [entity.id for entity in entities]

        context.raise_if_cancelled()

        add_record_ids(import_history_id, ids, session=db)
        increment_counters(
            import_history_id,
            success=len(ids),
            percentage=payload.get("percentage") or 0.0,
            session=db,
        )

    logger.info("Inserted %d %s records for import %s", len(ids), content_type, import_history_id)
    return {"inserted": len(ids), "ids": ids}


def import_history_remove(payload: Dict[str, Any], context: WorkerContext) -> Dict[str, Any]:
    """Delete one chunk of imported records and drop them from the history."""
    content_type = payload["content_type"]
    import_history_id = payload["import_history_id"]
    ids = list(payload.get("result") or [])

    model = get_model(content_type)

    with bind_import_id(import_history_id), session_scope() as db:
        result = db.execute(delete(model).where(model.id.in_(ids)))
        removed = result.rowcount or 0

        context.raise_if_cancelled()

        pull_record_ids(import_history_id, ids, session=db)

    logger.info("Removed %d %s records for import %s", removed, content_type, import_history_id)
    return {"removed": removed}
