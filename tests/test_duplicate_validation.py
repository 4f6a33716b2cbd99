from app.db.models import Company, Customer
from app.domain.imports.history import session_scope
from app.domain.imports.validation import before_import, is_row_valid


def _seed(*entities):
    with session_scope() as db:
        db.add_all(entities)


def _messages(errors):
    return [str(error) for error in errors]


def test_customer_duplicates_are_reported_in_code_email_phone_order():
    _seed(Customer(primary_email="ada@example.com", primary_phone="555-0100", code="C-1"))
    snapshot = before_import("customer")

    errors = is_row_valid(
        "customer",
        {"primaryEmail": "ada@example.com", "primaryPhone": "555-0100", "code": "C-1"},
        snapshot,
    )

    assert _messages(errors) == [
        "Duplicated code: C-1",
        "Duplicated email: ada@example.com",
        "Duplicated phone: 555-0100",
    ]
    assert [error.field for error in errors] == ["code", "primaryEmail", "primaryPhone"]


def test_new_customer_row_is_valid():
    _seed(Customer(primary_email="ada@example.com"))
    snapshot = before_import("customer")

    assert is_row_valid("customer", {"primaryEmail": "grace@example.com", "code": "C-2"}, snapshot) == []


def test_empty_values_are_never_duplicates():
    # Existing customers without phone or code must not make blank cells collide.
    _seed(Customer(primary_email="ada@example.com"), Customer(primary_email="grace@example.com", code=""))
    snapshot = before_import("customer")

    assert snapshot.existing_phones == set()
    assert snapshot.existing_codes == set()
    assert is_row_valid("customer", {"primaryEmail": "", "primaryPhone": "", "code": ""}, snapshot) == []


def test_leads_and_customers_share_the_same_identity_space():
    _seed(Customer(state="customer", primary_email="ada@example.com"))
    snapshot = before_import("lead")

    assert _messages(is_row_valid("lead", {"primaryEmail": "ada@example.com"}, snapshot)) == [
        "Duplicated email: ada@example.com"
    ]


def test_deleted_entities_are_ignored():
    _seed(Customer(primary_email="gone@example.com", status="deleted"))
    snapshot = before_import("customer")

    assert is_row_valid("customer", {"primaryEmail": "gone@example.com"}, snapshot) == []


def test_company_duplicates_by_name_and_code():
    _seed(Company(primary_name="Acme", code="ACME"))
    snapshot = before_import("company")

    errors = is_row_valid("company", {"primaryName": "Acme", "code": "ACME"}, snapshot)

    assert _messages(errors) == ["Duplicated name: Acme", "Duplicated code: ACME"]


def test_other_content_types_are_not_checked():
    snapshot = before_import("product")

    assert is_row_valid("product", {"name": "Widget", "code": "W-1"}, snapshot) == []
    assert snapshot.existing_codes == set()
