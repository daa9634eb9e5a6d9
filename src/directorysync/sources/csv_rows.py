"""Clinical store read from a flat specimen CSV export."""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping, Sequence
from datetime import date
from pathlib import Path
from typing import Any

import pandas as pd

from directorysync.errors import ClinicalStoreError
from directorysync.models import PatientRecord, SpecimenRecord
from directorysync.sources.base import (
    BIOBANK_PROFILE,
    COLLECTION_PROFILE,
    ClinicalStore,
    SpecimensByCollection,
    bbmri_eric_identifier,
    has_profile,
    resolve_default_collection,
)

logger = logging.getLogger(__name__)

SPECIMEN_COLUMNS: tuple[str, ...] = (
    "specimen_id",
    "collection_id",
    "patient_id",
    "sex",
    "birth_date",
    "material",
    "storage_temperature",
    "sample_diagnoses",
    "patient_diagnoses",
    "collected_on",
)


class CsvClinicalStore(ClinicalStore):
    """Offline clinical store for exports and tests.

    One CSV row per specimen; multi-valued cells (storage temperatures and
    diagnoses) are separated by ``;``. Organizations live in an optional JSON
    file holding a list of FHIR Organization resources, which is rewritten on
    :meth:`update_entity`.
    """

    name = "csv"

    def __init__(
        self,
        *,
        specimens_path: str | Path,
        organizations_path: str | Path | None = None,
        delimiter: str = ",",
        chunksize: int = 100_000,
    ) -> None:
        self.specimens_path = Path(specimens_path)
        self.organizations_path = Path(organizations_path) if organizations_path else None
        self.delimiter = delimiter
        self.chunksize = chunksize

    def fetch_specimens_by_collection(self, default_collection_id: str | None = None) -> SpecimensByCollection:
        if not self.specimens_path.exists():
            raise ClinicalStoreError(f"Specimen file not found: {self.specimens_path}")

        patients: dict[str, PatientRecord] = {}
        grouped: dict[str | None, list[SpecimenRecord]] = {}
        try:
            frame_iter = pd.read_csv(
                self.specimens_path,
                sep=self.delimiter,
                dtype=str,
                usecols=lambda c: c in SPECIMEN_COLUMNS,
                chunksize=self.chunksize,
            )
            for frame in frame_iter:
                for row in frame.itertuples(index=False):
                    specimen = self._specimen(row, patients)
                    grouped.setdefault(specimen.collection_id, []).append(specimen)
        except (ValueError, UnicodeDecodeError, pd.errors.ParserError) as exc:
            raise ClinicalStoreError(f"Unreadable specimen file {self.specimens_path}: {exc}") from exc

        known = [
            identifier
            for identifier in (bbmri_eric_identifier(org) for org in self.list_collections())
            if identifier
        ]
        return resolve_default_collection(grouped, default_collection_id, known)

    def list_biobanks(self) -> list[dict[str, Any]]:
        return [org for org in self._organizations() if has_profile(org, BIOBANK_PROFILE)]

    def list_collections(self, collection_ids: Sequence[str] | None = None) -> list[dict[str, Any]]:
        wanted = set(collection_ids) if collection_ids is not None else None
        return [
            org
            for org in self._organizations()
            if has_profile(org, COLLECTION_PROFILE)
            and (wanted is None or bbmri_eric_identifier(org) in wanted)
        ]

    def update_entity(self, entity: Mapping[str, Any]) -> None:
        if self.organizations_path is None:
            raise ClinicalStoreError("No organizations file configured")

        organizations = self._organizations()
        for index, org in enumerate(organizations):
            if org.get("id") == entity.get("id"):
                organizations[index] = copy.deepcopy(dict(entity))
                break
        else:
            raise ClinicalStoreError(f"Unknown organization: {entity.get('id')}")

        self.organizations_path.write_text(json.dumps(organizations, indent=2))

    def _organizations(self) -> list[dict[str, Any]]:
        if self.organizations_path is None or not self.organizations_path.exists():
            return []
        try:
            payload = json.loads(self.organizations_path.read_text())
        except json.JSONDecodeError as exc:
            raise ClinicalStoreError(f"Invalid organizations file {self.organizations_path}: {exc}") from exc
        if isinstance(payload, dict):
            payload = [entry.get("resource", {}) for entry in payload.get("entry", [])]
        return list(payload)

    def _specimen(self, row: Any, patients: dict[str, PatientRecord]) -> SpecimenRecord:
        patient_id = self._to_string(getattr(row, "patient_id", None))
        patient = None
        if patient_id:
            patient = patients.get(patient_id)
            if patient is None:
                patient = patients[patient_id] = PatientRecord(
                    patient_id=patient_id,
                    sex=self._to_string(getattr(row, "sex", None)),
                    birth_date=self._to_date(getattr(row, "birth_date", None)),
                )
            for code in self._split(getattr(row, "patient_diagnoses", None)):
                if code not in patient.diagnoses:
                    patient.diagnoses.append(code)

        return SpecimenRecord(
            specimen_id=self._to_string(getattr(row, "specimen_id", None)) or "",
            collection_id=self._to_string(getattr(row, "collection_id", None)),
            patient=patient,
            material=self._to_string(getattr(row, "material", None)),
            storage_temperatures=self._split(getattr(row, "storage_temperature", None)),
            diagnoses=self._split(getattr(row, "sample_diagnoses", None)),
            collected_on=self._to_date(getattr(row, "collected_on", None)),
        )

    @staticmethod
    def _to_string(value: Any) -> str | None:
        if value is None or pd.isna(value):
            return None

        cleaned = str(value).strip()
        if not cleaned or cleaned.lower() in {"nan", "none", "null"}:
            return None

        return cleaned

    @classmethod
    def _split(cls, value: Any) -> list[str]:
        cleaned = cls._to_string(value)
        if cleaned is None:
            return []
        return [part.strip() for part in cleaned.split(";") if part.strip()]

    @classmethod
    def _to_date(cls, value: Any) -> date | None:
        cleaned = cls._to_string(value)
        if cleaned is None:
            return None
        try:
            return date.fromisoformat(cleaned[:10])
        except ValueError:
            logger.warning("Unparsable date %r", cleaned)
            return None
