"""Clinical stores that supply specimens and receive registry metadata."""

from .base import (
    BBMRI_ERIC_IDENTIFIER_SYSTEM,
    BIOBANK_PROFILE,
    COLLECTION_PROFILE,
    ClinicalStore,
    bbmri_eric_identifier,
    distinct_diagnoses,
    resolve_default_collection,
)
from .csv_rows import CsvClinicalStore
from .fhir import FhirStoreClient

__all__ = [
    "BBMRI_ERIC_IDENTIFIER_SYSTEM",
    "BIOBANK_PROFILE",
    "COLLECTION_PROFILE",
    "ClinicalStore",
    "CsvClinicalStore",
    "FhirStoreClient",
    "bbmri_eric_identifier",
    "distinct_diagnoses",
    "resolve_default_collection",
]
