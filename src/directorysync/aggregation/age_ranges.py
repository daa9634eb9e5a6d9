"""Discrete age buckets used by the Directory fact table."""

from __future__ import annotations

import math

UNKNOWN = "Unknown"
NEWBORN = "Newborn"
INFANT = "Infant"
CHILD = "Child"
ADOLESCENT = "Adolescent"
ADULT = "Adult"
MIDDLE_AGED = "Middle-aged"
AGED_65_79 = "Aged (65-79 years)"
AGED_80_PLUS = "Aged (>80 years)"

AGE_RANGE_LABELS: tuple[str, ...] = (
    UNKNOWN,
    NEWBORN,
    INFANT,
    CHILD,
    ADOLESCENT,
    ADULT,
    MIDDLE_AGED,
    AGED_65_79,
    AGED_80_PLUS,
)

# Exclusive upper bounds, checked in order.
_UPPER_BOUNDS: tuple[tuple[int, str], ...] = (
    (2, INFANT),
    (13, CHILD),
    (18, ADOLESCENT),
    (45, ADULT),
    (65, MIDDLE_AGED),
    (80, AGED_65_79),
)


def parse_age(value: object) -> int | None:
    """Turn a raw age value into an int, or ``None`` when it is unusable."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if math.isfinite(number) else None


def classify_age_range(age: int | None) -> str:
    """Map an age in years to its Directory age-range label."""

    if age is None or age < 0:
        return UNKNOWN
    if age == 0:
        return NEWBORN
    for bound, label in _UPPER_BOUNDS:
        if age < bound:
            return label
    return AGED_80_PLUS
