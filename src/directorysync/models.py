"""Canonical in-memory data models used by Directory sync."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

BBMRI_ERIC_ID_PREFIX = "bbmri-eric:ID:"
FACT_ID_PREFIX = "bbmri-eric:factID:"
AGE_SENTINEL = -1

_BBMRI_ERIC_ID_PATTERN = re.compile(r"bbmri-eric:ID:([a-zA-Z]{2})(_.+)")


@dataclass(frozen=True)
class BbmriEricId:
    """Structured BBMRI-ERIC identifier such as ``bbmri-eric:ID:DE_12345``."""

    country_code: str
    suffix: str

    @classmethod
    def parse(cls, value: str | None) -> BbmriEricId | None:
        """Parse a raw identifier, returning ``None`` when it is malformed."""

        if value is None:
            return None
        match = _BBMRI_ERIC_ID_PATTERN.fullmatch(value.strip())
        if match is None:
            return None
        return cls(country_code=match.group(1).upper(), suffix=match.group(2))

    def __str__(self) -> str:
        return f"{BBMRI_ERIC_ID_PREFIX}{self.country_code}{self.suffix}"


def is_valid_collection_id(value: str | None) -> bool:
    """Return True for ids shaped like ``bbmri-eric:ID:DE_X:collection:Y``."""

    if not value:
        return False
    parts = value.split(":")
    return len(parts) == 5 and parts[1] == "ID" and parts[3] == "collection"


@dataclass(frozen=True)
class InputRow:
    """One (specimen, diagnosis) pair fed into aggregation."""

    collection_id: str
    material: str | None
    patient_id: str | None
    sex: str | None
    age: str | None
    diagnosis: str | None


@dataclass
class PatientRecord:
    """Patient attributes needed for aggregation."""

    patient_id: str
    sex: str | None = None
    birth_date: date | None = None
    diagnoses: list[str] = field(default_factory=list)


@dataclass
class SpecimenRecord:
    """Single specimen as read from the clinical store."""

    specimen_id: str
    collection_id: str | None
    patient: PatientRecord | None = None
    material: str | None = None
    storage_temperatures: list[str] = field(default_factory=list)
    diagnoses: list[str] = field(default_factory=list)
    collected_on: date | None = None


@dataclass
class CollectionSummary:
    """Collection-level statistics built from specimens and patients."""

    id: str
    size: int = 0
    number_of_donors: int = 0
    sex: set[str] = field(default_factory=set)
    age_low: int = AGE_SENTINEL
    age_high: int = AGE_SENTINEL
    materials: set[str] = field(default_factory=set)
    storage_temperatures: set[str] = field(default_factory=set)
    diagnosis_available: set[str] = field(default_factory=set)

    def has_age_bounds(self) -> bool:
        return self.age_low != AGE_SENTINEL and self.age_high != AGE_SENTINEL


@dataclass(frozen=True)
class FactKey:
    """Grouping key for one star-model hypercube cell."""

    sex: str
    diagnosis: str
    age_range: str
    material: str

    def as_string(self) -> str:
        return "|".join((self.sex, self.diagnosis, self.age_range, self.material))


@dataclass(frozen=True)
class Fact:
    """Anonymized aggregate row for the Directory fact table."""

    id: str
    collection: str
    sex: str
    disease: str
    age_range: str
    sample_type: str
    number_of_donors: int
    number_of_samples: int
    last_update: str

    def to_row(self) -> dict[str, Any]:
        """Serialize into the flat mapping submitted to the Directory."""

        return {
            "id": self.id,
            "collection": self.collection,
            "sex": self.sex,
            "disease": self.disease,
            "age_range": self.age_range,
            "sample_type": self.sample_type,
            "number_of_donors": str(self.number_of_donors),
            "number_of_samples": str(self.number_of_samples),
            "last_update": self.last_update,
        }
