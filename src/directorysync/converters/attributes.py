"""Translate clinical-store attribute values into Directory vocabulary."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

MIRIAM_ICD_PREFIX = "urn:miriam:icd:"

_MATERIAL_RENAMES: dict[str, str] = {
    "TISSUE_FORMALIN": "TISSUE_PARAFFIN_EMBEDDED",
    "TISSUE": "TISSUE_FROZEN",
    "CF_DNA": "CDNA",
    "BLOOD_SERUM": "SERUM",
    "STOOL_FAECES": "FECES",
    "BLOOD_PLASMA": "SERUM",
}

# Materials the Directory has no term for.
_MATERIALS_WITHOUT_DIRECTORY_TERM = frozenset(
    {
        "DERIVATIVE",
        "CSF_LIQUOR",
        "LIQUID",
        "ASCITES",
        "BONE_MARROW",
        "TISSUE_PAXGENE_OR_ELSE",
    }
)


def convert_sex(sex: str | None) -> str | None:
    if sex is None:
        return None
    return sex.upper()


def convert_material(material: str | None) -> str | None:
    """Map a FHIR sample material code onto the Directory material list."""

    if material is None:
        return None

    value = material.upper().replace("-", "_").replace("_VITAL", "")
    value = _MATERIAL_RENAMES.get(value, value)
    if value.endswith("_OTHER") or value in _MATERIALS_WITHOUT_DIRECTORY_TERM:
        return "OTHER"
    return value


def convert_storage_temperature(storage_temperature: str | None) -> str | None:
    """The Directory does not know gaseous nitrogen storage."""

    if storage_temperature is None:
        return None
    return storage_temperature.replace("temperatureGN", "temperatureOther")


def convert_diagnosis(diagnosis: str | None) -> str | None:
    """Return the MIRIAM URN form of an ICD-10 code, or ``None`` if it has no usable shape."""

    if diagnosis is None:
        return None
    if diagnosis.startswith(MIRIAM_ICD_PREFIX):
        return diagnosis
    if len(diagnosis) in (3, 5):
        return MIRIAM_ICD_PREFIX + diagnosis

    logger.warning("Invalid diagnosis code %r", diagnosis)
    return None


def strip_miriam_prefix(diagnosis: str) -> str:
    if diagnosis.startswith(MIRIAM_ICD_PREFIX):
        return diagnosis[len(MIRIAM_ICD_PREFIX):]
    return diagnosis
