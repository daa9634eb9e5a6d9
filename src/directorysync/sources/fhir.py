"""Clinical store backed by a FHIR R4 server (BBMRI.de profiles)."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from datetime import date
from typing import Any

import requests

from directorysync.errors import ClinicalStoreError
from directorysync.models import PatientRecord, SpecimenRecord, is_valid_collection_id
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

CUSTODIAN_EXTENSION = "https://fhir.bbmri.de/StructureDefinition/Custodian"
STORAGE_TEMPERATURE_EXTENSION = "https://fhir.bbmri.de/StructureDefinition/StorageTemperature"
SAMPLE_DIAGNOSIS_EXTENSION = "https://fhir.bbmri.de/StructureDefinition/SampleDiagnosis"
ICD10_SYSTEM = "http://hl7.org/fhir/sid/icd-10"


def parse_fhir_date(value: str | None) -> date | None:
    """Parse the date part of a FHIR date or dateTime (partial dates pad to the 1st)."""

    if not value:
        return None
    parts = value[:10].split("-")
    try:
        year = int(parts[0])
        month = int(parts[1]) if len(parts) > 1 else 1
        day = int(parts[2]) if len(parts) > 2 else 1
        return date(year, month, day)
    except (ValueError, IndexError):
        logger.warning("Unparsable FHIR date %r", value)
        return None


def _reference_id(reference: Mapping[str, Any] | None, resource_type: str) -> str | None:
    if not reference:
        return None
    value = str(reference.get("reference") or "")
    prefix = f"{resource_type}/"
    if not value.startswith(prefix):
        return None
    return value[len(prefix):]


def _extension_codes(resource: Mapping[str, Any], url: str) -> list[str]:
    codes = []
    for extension in resource.get("extension") or []:
        if extension.get("url") != url:
            continue
        codings = (extension.get("valueCodeableConcept") or {}).get("coding") or []
        if codings and codings[0].get("code"):
            codes.append(str(codings[0]["code"]))
    return codes


def specimen_material(specimen: Mapping[str, Any]) -> str | None:
    specimen_type = specimen.get("type") or {}
    if specimen_type.get("text"):
        return str(specimen_type["text"])
    codings = specimen_type.get("coding") or []
    if codings and codings[0].get("code"):
        return str(codings[0]["code"])
    return None


class FhirStoreClient(ClinicalStore):
    """Read specimens, patients, conditions and organizations over FHIR REST.

    Search results are followed through bundle ``next`` links until exhausted.
    """

    name = "fhir"

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 60.0,
        page_size: int = 500,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.page_size = page_size

    def fetch_specimens_by_collection(self, default_collection_id: str | None = None) -> SpecimensByCollection:
        organizations = {
            resource["id"]: resource for resource in self.search("Organization") if resource.get("id")
        }
        patients = self._patients()

        grouped: dict[str | None, list[SpecimenRecord]] = {}
        for resource in self.search("Specimen"):
            specimen = self._specimen(resource, patients, organizations)
            grouped.setdefault(specimen.collection_id, []).append(specimen)

        known = [
            identifier
            for identifier in (
                bbmri_eric_identifier(org)
                for org in organizations.values()
                if has_profile(org, COLLECTION_PROFILE)
            )
            if is_valid_collection_id(identifier)
        ]
        result = resolve_default_collection(grouped, default_collection_id, known)
        logger.info(
            "Fetched %d specimens in %d collections",
            sum(len(items) for items in result.values()),
            len(result),
        )
        return result

    def list_biobanks(self) -> list[dict[str, Any]]:
        return [org for org in self.search("Organization") if has_profile(org, BIOBANK_PROFILE)]

    def list_collections(self, collection_ids: Sequence[str] | None = None) -> list[dict[str, Any]]:
        wanted = set(collection_ids) if collection_ids is not None else None
        collections = []
        for org in self.search("Organization"):
            if not has_profile(org, COLLECTION_PROFILE):
                continue
            if wanted is not None and bbmri_eric_identifier(org) not in wanted:
                continue
            collections.append(org)
        return collections

    def update_entity(self, entity: Mapping[str, Any]) -> None:
        resource_type = entity.get("resourceType", "Organization")
        entity_id = entity.get("id")
        if not entity_id:
            raise ClinicalStoreError("Cannot update a resource without an id")
        url = f"{self.base_url}/{resource_type}/{entity_id}"
        try:
            response = self.session.put(url, json=dict(entity), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ClinicalStoreError(f"Updating {resource_type}/{entity_id} failed: {exc}") from exc

    def search(self, resource_type: str, params: Mapping[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        """Yield every resource of a search, following paging links."""

        url: str | None = f"{self.base_url}/{resource_type}"
        query: dict[str, Any] | None = {"_count": self.page_size, **(params or {})}
        while url:
            bundle = self._get_json(url, query)
            for entry in bundle.get("entry") or []:
                resource = entry.get("resource")
                if resource and resource.get("resourceType") == resource_type:
                    yield resource
            url = next(
                (link.get("url") for link in bundle.get("link") or [] if link.get("relation") == "next"),
                None,
            )
            query = None

    def _get_json(self, url: str, params: Mapping[str, Any] | None) -> dict[str, Any]:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise ClinicalStoreError(f"FHIR request to {url} failed: {exc}") from exc
        except ValueError as exc:
            raise ClinicalStoreError(f"FHIR server returned invalid JSON for {url}") from exc

    def _patients(self) -> dict[str, PatientRecord]:
        patients: dict[str, PatientRecord] = {}
        for resource in self.search("Patient"):
            patient_id = resource.get("id")
            if not patient_id:
                logger.warning("Skipping Patient resource without an id")
                continue
            patients[patient_id] = PatientRecord(
                patient_id=patient_id,
                sex=resource.get("gender"),
                birth_date=parse_fhir_date(resource.get("birthDate")),
            )

        for condition in self.search("Condition"):
            patient_id = _reference_id(condition.get("subject"), "Patient")
            if patient_id not in patients:
                continue
            for coding in (condition.get("code") or {}).get("coding") or []:
                if coding.get("system") == ICD10_SYSTEM and coding.get("code"):
                    patients[patient_id].diagnoses.append(str(coding["code"]))
        return patients

    def _specimen(
        self,
        resource: Mapping[str, Any],
        patients: Mapping[str, PatientRecord],
        organizations: Mapping[str, Mapping[str, Any]],
    ) -> SpecimenRecord:
        patient_id = _reference_id(resource.get("subject"), "Patient")
        collection = resource.get("collection") or {}
        return SpecimenRecord(
            specimen_id=str(resource.get("id")),
            collection_id=self._collection_id(resource, organizations),
            patient=patients.get(patient_id) if patient_id else None,
            material=specimen_material(resource),
            storage_temperatures=_extension_codes(resource, STORAGE_TEMPERATURE_EXTENSION),
            diagnoses=_extension_codes(resource, SAMPLE_DIAGNOSIS_EXTENSION),
            collected_on=parse_fhir_date(collection.get("collectedDateTime")),
        )

    @staticmethod
    def _collection_id(
        resource: Mapping[str, Any],
        organizations: Mapping[str, Mapping[str, Any]],
    ) -> str | None:
        for extension in resource.get("extension") or []:
            if extension.get("url") != CUSTODIAN_EXTENSION:
                continue
            org_id = _reference_id(extension.get("valueReference"), "Organization")
            organization = organizations.get(org_id) if org_id else None
            if organization is None:
                return None
            for identifier in organization.get("identifier") or []:
                if is_valid_collection_id(identifier.get("value")):
                    return str(identifier["value"])
        return None
