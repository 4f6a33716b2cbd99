import pytest

from app.domain.imports.utils import chunk_ids, clear_empty_values, generate_pronoun, get_percentage


def test_clear_empty_values_drops_blank_and_placeholder_fields():
    doc = {
        "first_name": "Ada",
        "last_name": "",
        "position": "unknown",
        "scope_brand_ids": [],
        "code": "C-1",
    }

    result = clear_empty_values(doc)

    assert result is doc
    assert doc == {"first_name": "Ada", "code": "C-1"}


def test_clear_empty_values_keeps_zero_and_non_empty_lists():
    doc = {"pronoun": 0, "scope_brand_ids": ["brand-1"]}

    assert clear_empty_values(doc) == {"pronoun": 0, "scope_brand_ids": ["brand-1"]}


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Male", 1),
        ("female", 2),
        ("  NOT KNOWN ", 0),
        ("Not applicable", 9),
        ("they/them", ""),
        (None, ""),
    ],
)
def test_generate_pronoun_maps_labels_case_insensitively(label, expected):
    assert generate_pronoun(label) == expected


def test_chunk_ids_splits_into_bounded_chunks():
    ids = [str(i) for i in range(7)]

    chunks = chunk_ids(ids, 3)

    assert chunks == [["0", "1", "2"], ["3", "4", "5"], ["6"]]
    assert chunk_ids([], 3) == []


def test_chunk_ids_rejects_non_positive_size():
    with pytest.raises(ValueError):
        chunk_ids(["a"], 0)


def test_get_percentage_handles_zero_total():
    assert get_percentage(5, 0) == 0.0
    assert get_percentage(1, 3) == 33.333
    assert get_percentage(3, 3) == 100.0
