"""
Resolve CSV header names to the entity properties they populate.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import Field
from app.domain.imports.errors import InvalidColumnError
from app.domain.imports.history import session_scope

logger = logging.getLogger(__name__)

CUSTOM_FIELD_PREFIX = "customFieldsData."

_CUSTOMER_FIELDS = {
    "firstName": "first_name",
    "lastName": "last_name",
    "middleName": "middle_name",
    "primaryEmail": "primary_email",
    "primaryPhone": "primary_phone",
    "code": "code",
    "pronoun": "pronoun",
    "position": "position",
    "department": "department",
    "description": "description",
    "leadStatus": "lead_status",
}

_BOARD_ITEM_FIELDS = {
    "name": "name",
    "description": "description",
    "stageId": "stage_id",
    "priority": "priority",
    "closeDate": "close_date",
}

BASIC_FIELDS: Dict[str, Dict[str, str]] = {
    "customer": _CUSTOMER_FIELDS,
    "lead": _CUSTOMER_FIELDS,
    "company": {
        "primaryName": "primary_name",
        "code": "code",
        "primaryEmail": "primary_email",
        "primaryPhone": "primary_phone",
        "size": "size",
        "industry": "industry",
        "website": "website",
        "businessType": "business_type",
        "description": "description",
    },
    "product": {
        "name": "name",
        "code": "code",
        "type": "type",
        "unitPrice": "unit_price",
        "sku": "sku",
        "description": "description",
    },
    "deal": _BOARD_ITEM_FIELDS,
    "task": _BOARD_ITEM_FIELDS,
    "ticket": _BOARD_ITEM_FIELDS,
}

# Leads share the customer custom field definitions.
_FIELD_CONTENT_TYPE = {"lead": "customer"}


def _custom_fields(content_type: str, db: Session) -> Dict[str, Field]:
    field_content_type = _FIELD_CONTENT_TYPE.get(content_type, content_type)
    rows = db.execute(select(Field).where(Field.content_type == field_content_type)).scalars()
    return {row.text: row for row in rows}


def check_field_names(content_type: str, field_names: List[str], session: Optional[Session] = None) -> List[Dict[str, str]]:
    """
    Map each CSV header to a property, preserving header order.

    Basic headers map to entity attributes; ``customFieldsData.<label>`` or a
    bare custom field label maps to that custom field definition.

    Raises:
        InvalidColumnError: For a header that matches neither
    """
    basic = BASIC_FIELDS.get(content_type)
    if basic is None:
        raise InvalidColumnError(f"Unsupported content type: {content_type}")

    properties: List[Dict[str, str]] = []

    with session_scope(session) as db:
        custom = _custom_fields(content_type, db)

        for field_name in field_names:
            name = str(field_name).strip()

            if name in basic:
                properties.append({"type": "basic", "name": basic[name]})
                continue

            label = name[len(CUSTOM_FIELD_PREFIX):] if name.startswith(CUSTOM_FIELD_PREFIX) else name
            custom_field = custom.get(label)
            if custom_field is not None:
                properties.append({"type": "customProperty", "name": custom_field.text, "id": custom_field.id})
                continue

            logger.warning("Unknown column %r for %s import", name, content_type)
            raise InvalidColumnError(f"Bad column name {name}")

    return properties
