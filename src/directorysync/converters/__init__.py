"""Converters between clinical-store and Directory vocabularies."""

from .attributes import (
    MIRIAM_ICD_PREFIX,
    convert_diagnosis,
    convert_material,
    convert_sex,
    convert_storage_temperature,
    strip_miriam_prefix,
)
from .icd10 import FALLBACK_CODE, is_valid_icd10, normalize_icd10

__all__ = [
    "FALLBACK_CODE",
    "MIRIAM_ICD_PREFIX",
    "convert_diagnosis",
    "convert_material",
    "convert_sex",
    "convert_storage_temperature",
    "is_valid_icd10",
    "normalize_icd10",
    "strip_miriam_prefix",
]
