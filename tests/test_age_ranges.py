import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from directorysync.aggregation import AGE_RANGE_LABELS, classify_age_range, parse_age  # noqa: E402


@pytest.mark.parametrize(
    ("age", "label"),
    [
        (0, "Newborn"),
        (1, "Infant"),
        (2, "Child"),
        (12, "Child"),
        (13, "Adolescent"),
        (17, "Adolescent"),
        (18, "Adult"),
        (44, "Adult"),
        (45, "Middle-aged"),
        (64, "Middle-aged"),
        (65, "Aged (65-79 years)"),
        (79, "Aged (65-79 years)"),
        (80, "Aged (>80 years)"),
        (107, "Aged (>80 years)"),
    ],
)
def test_classify_age_range_boundaries(age: int, label: str) -> None:
    assert classify_age_range(age) == label


def test_missing_or_negative_age_is_unknown() -> None:
    assert classify_age_range(None) == "Unknown"
    assert classify_age_range(-1) == "Unknown"


def test_every_label_is_reachable() -> None:
    produced = {classify_age_range(age) for age in [None, *range(0, 100)]}

    assert produced == set(AGE_RANGE_LABELS)


def test_parse_age_handles_raw_values() -> None:
    assert parse_age("42") == 42
    assert parse_age(" 7 ") == 7
    assert parse_age("12.0") == 12
    assert parse_age(5) == 5
    assert parse_age("") is None
    assert parse_age("abc") is None
    assert parse_age("nan") is None
    assert parse_age(None) is None
    assert parse_age(True) is None
