"""
Duplicate detection for CSV imports.

``before_import`` snapshots the unique-field values already stored for a
content type; ``is_row_valid`` checks one CSV row against that snapshot. The
snapshot is rebuilt after every committed batch, so rows inserted by batch N
are seen as duplicates from batch N+1 onward.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import Company, Customer
from app.domain.imports.errors import RowValidationError
from app.domain.imports.history import session_scope
from app.domain.imports.utils import IMPORT_CONTENT_TYPE

logger = logging.getLogger(__name__)

CUSTOMER_TYPES = (IMPORT_CONTENT_TYPE["CUSTOMER"], IMPORT_CONTENT_TYPE["LEAD"])
COMPANY_TYPE = IMPORT_CONTENT_TYPE["COMPANY"]

DELETED_STATUS = "deleted"


@dataclass
class ValidationSnapshot:
    content_type: str
    existing_emails: Set[str] = field(default_factory=set)
    existing_phones: Set[str] = field(default_factory=set)
    existing_codes: Set[str] = field(default_factory=set)
    existing_names: Set[str] = field(default_factory=set)


def _collect(target: Set[str], value: Optional[str]) -> None:
    # Blank values never count as an existing identity.
    if value is None:
        return
    value = str(value).strip()
    if value:
        target.add(value)


def before_import(content_type: str, session: Optional[Session] = None) -> ValidationSnapshot:
    """Load the unique-field values of every non-deleted entity of ``content_type``."""
    snapshot = ValidationSnapshot(content_type=content_type)

    if content_type not in CUSTOMER_TYPES and content_type != COMPANY_TYPE:
        return snapshot

    with session_scope(session) as db:
        if content_type in CUSTOMER_TYPES:
            rows = db.execute(
                select(Customer.primary_email, Customer.primary_phone, Customer.code)
                .where(Customer.status != DELETED_STATUS)
            )
            for primary_email, primary_phone, code in rows:
                _collect(snapshot.existing_emails, primary_email)
                _collect(snapshot.existing_phones, primary_phone)
                _collect(snapshot.existing_codes, code)
        else:
            rows = db.execute(
                select(Company.primary_name, Company.code)
                .where(Company.status != DELETED_STATUS)
            )
            for primary_name, code in rows:
                _collect(snapshot.existing_names, primary_name)
                _collect(snapshot.existing_codes, code)

    logger.debug(
        "Validation snapshot for %s: %d emails, %d phones, %d codes, %d names",
        content_type,
        len(snapshot.existing_emails),
        len(snapshot.existing_phones),
        len(snapshot.existing_codes),
        len(snapshot.existing_names),
    )
    return snapshot


def _value(row: Dict[str, str], key: str) -> str:
    value = row.get(key)
    return str(value).strip() if value is not None else ""


def _check(errors: List[RowValidationError], existing: Set[str], field_name: str, label: str, value: str) -> None:
    if value and value in existing:
        errors.append(RowValidationError(field=field_name, value=value, message=f"Duplicated {label}: {value}"))


def is_row_valid(content_type: str, row: Dict[str, str], snapshot: ValidationSnapshot) -> List[RowValidationError]:
    """Return the duplicate violations of ``row``; an empty list means the row is valid."""
    errors: List[RowValidationError] = []

    if content_type in CUSTOMER_TYPES:
        _check(errors, snapshot.existing_codes, "code", "code", _value(row, "code"))
        _check(errors, snapshot.existing_emails, "primaryEmail", "email", _value(row, "primaryEmail"))
        _check(errors, snapshot.existing_phones, "primaryPhone", "phone", _value(row, "primaryPhone"))
        return errors

    if content_type == COMPANY_TYPE:
        _check(errors, snapshot.existing_names, "primaryName", "name", _value(row, "primaryName"))
        _check(errors, snapshot.existing_codes, "code", "code", _value(row, "code"))
        return errors

    return errors
