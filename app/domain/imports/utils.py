from typing import Any, Dict, List, Sequence, TypeVar

T = TypeVar("T")

IMPORT_CONTENT_TYPE = {
    "CUSTOMER": "customer",
    "COMPANY": "company",
    "LEAD": "lead",
    "PRODUCT": "product",
    "DEAL": "deal",
    "TASK": "task",
    "TICKET": "ticket",
}

CONTENT_TYPES = frozenset(IMPORT_CONTENT_TYPE.values())

# Label/value pairs used by the customer "pronoun" select field.
PRONOUN_OPTIONS = [
    {"label": "Not known", "value": 0},
    {"label": "Male", "value": 1},
    {"label": "Female", "value": 2},
    {"label": "Not applicable", "value": 9},
]

EMPTY_PLACEHOLDERS = ("", "unknown")


def clear_empty_values(obj: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is blank, the "unknown" placeholder, or an empty list."""
    for key in list(obj.keys()):
        value = obj[key]

        if isinstance(value, str) and value in EMPTY_PLACEHOLDERS:
            del obj[key]
            continue

        if isinstance(value, list) and len(value) == 0:
            del obj[key]

    return obj


def generate_pronoun(value: Any) -> Any:
    """Map a pronoun label such as "Male" to its stored value, or "" when unknown."""
    if value is None:
        return ""

    label = str(value).strip().upper()
    for option in PRONOUN_OPTIONS:
        if option["label"].upper() == label:
            return option["value"]

    return ""


def chunk_ids(ids: Sequence[T], size: int) -> List[List[T]]:
    """Split ``ids`` into consecutive chunks of at most ``size`` items."""
    if size <= 0:
        raise ValueError("Chunk size must be positive")

    return [list(ids[start:start + size]) for start in range(0, len(ids), size)]


def get_percentage(count: int, total: int) -> float:
    """Percentage of ``total`` represented by ``count``, rounded to 3 decimals."""
    if not total:
        return 0.0
    return round((count / total) * 100, 3)
