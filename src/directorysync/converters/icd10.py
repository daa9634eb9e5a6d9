"""Normalize free-text diagnosis codes into WHO ICD-10 notation."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

FALLBACK_CODE = "R69"

_VALID_CODE = re.compile(r"^[A-Z]\d{2}(?:\.\d{1,2})?$")
_DISALLOWED = re.compile(r"[^A-Z0-9.]")


def is_valid_icd10(code: str | None) -> bool:
    """Return True if ``code`` has WHO ICD-10 shape (``C50`` or ``C50.12``)."""

    return code is not None and _VALID_CODE.match(code) is not None


def normalize_icd10(raw: str | None) -> str:
    """Coerce a raw code into WHO ICD-10 form.

    Extensions beyond two decimal digits are dropped (``C50.123`` becomes
    ``C50.12``). Input that cannot be salvaged yields ``R69`` (ill-defined
    cause), which keeps downstream aggregation total.
    """

    if raw is None or not any(ch.isdigit() for ch in raw):
        return FALLBACK_CODE

    cleaned = raw.strip().upper().replace(",", ".").replace("-", ".")
    cleaned = re.sub(r"\s+", "", cleaned)
    cleaned = _DISALLOWED.sub("", cleaned)

    letter_at = next((i for i, ch in enumerate(cleaned) if ch.isalpha()), None)
    if letter_at is None:
        logger.warning("No category letter in diagnosis code %r, using %s", raw, FALLBACK_CODE)
        return FALLBACK_CODE
    cleaned = cleaned[letter_at:]

    digits = "".join(ch for ch in cleaned[1:] if ch.isdigit())
    if len(digits) < 2:
        logger.warning("Fewer than two digits in diagnosis code %r, using %s", raw, FALLBACK_CODE)
        return FALLBACK_CODE
    code = cleaned[0] + digits[:2]

    if "." in cleaned:
        decimals = "".join(ch for ch in cleaned.split(".", 1)[1] if ch.isdigit())[:2]
        if decimals:
            code = f"{code}.{decimals}"

    if not is_valid_icd10(code):
        logger.warning("Could not normalize diagnosis code %r, using %s", raw, FALLBACK_CODE)
        return FALLBACK_CODE
    return code
