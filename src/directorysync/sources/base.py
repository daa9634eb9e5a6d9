"""Base interface for clinical data stores feeding a Directory sync."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from directorysync.aggregation.rows import explode_specimens
from directorysync.models import InputRow, SpecimenRecord, is_valid_collection_id

logger = logging.getLogger(__name__)

BBMRI_ERIC_IDENTIFIER_SYSTEM = "http://www.bbmri-eric.eu/"
BIOBANK_PROFILE = "https://fhir.bbmri.de/StructureDefinition/Biobank"
COLLECTION_PROFILE = "https://fhir.bbmri.de/StructureDefinition/Collection"

SpecimensByCollection = dict[str, list[SpecimenRecord]]


def bbmri_eric_identifier(organization: Mapping[str, Any]) -> str | None:
    """Return the BBMRI-ERIC identifier value of a FHIR Organization."""

    for identifier in organization.get("identifier") or []:
        if identifier.get("system") == BBMRI_ERIC_IDENTIFIER_SYSTEM and identifier.get("value"):
            return str(identifier["value"])
    return None


def has_profile(resource: Mapping[str, Any], profile: str) -> bool:
    return profile in ((resource.get("meta") or {}).get("profile") or [])


def resolve_default_collection(
    grouped: Mapping[str | None, list[SpecimenRecord]],
    default_collection_id: str | None,
    known_collection_ids: Sequence[str] = (),
) -> SpecimensByCollection:
    """Fold specimens without a collection into the default collection.

    Without a configured default, the only collection present is used (or the
    only collection the store knows, when no specimen names one). When that is
    ambiguous the unassigned specimens are dropped.
    """

    result: SpecimensByCollection = {
        str(key): list(value) for key, value in grouped.items() if key is not None
    }
    unassigned = list(grouped.get(None, []))
    if not unassigned:
        return result

    target = default_collection_id
    if target and not is_valid_collection_id(target):
        logger.warning("Default collection id %s is malformed, ignoring it", target)
        target = None
    if not target and len(result) == 1:
        target = next(iter(result))
    if not target and not result and len(known_collection_ids) == 1:
        target = known_collection_ids[0]
    if not target:
        logger.warning("Dropping %d specimens without a resolvable collection", len(unassigned))
        return result

    for specimen in unassigned:
        specimen.collection_id = target
    result.setdefault(target, []).extend(unassigned)
    return result


class ClinicalStore(ABC):
    """Row source and write-back target for a sync run.

    Implementations raise :class:`~directorysync.errors.ClinicalStoreError`
    when the store cannot be read or written.
    """

    name: str

    @abstractmethod
    def fetch_specimens_by_collection(self, default_collection_id: str | None = None) -> SpecimensByCollection:
        """Return every specimen, grouped by collection id."""

    @abstractmethod
    def list_biobanks(self) -> list[dict[str, Any]]:
        """Return biobank Organization resources."""

    @abstractmethod
    def list_collections(self, collection_ids: Sequence[str] | None = None) -> list[dict[str, Any]]:
        """Return collection Organization resources, optionally filtered by id."""

    @abstractmethod
    def update_entity(self, entity: Mapping[str, Any]) -> None:
        """Persist a modified Organization resource."""

    def fetch_rows(self, default_collection_id: str | None = None) -> dict[str, list[InputRow]]:
        return explode_specimens(self.fetch_specimens_by_collection(default_collection_id))

    def fetch_diagnoses(self, default_collection_id: str | None = None) -> list[str]:
        """Distinct raw diagnosis codes of all specimens and their patients."""

        specimens = self.fetch_specimens_by_collection(default_collection_id)
        return distinct_diagnoses(specimens)


def distinct_diagnoses(specimens_by_collection: Mapping[str, Sequence[SpecimenRecord]]) -> list[str]:
    codes: dict[str, None] = {}
    for specimens in specimens_by_collection.values():
        for specimen in specimens:
            codes.update(dict.fromkeys(specimen.diagnoses))
            if specimen.patient is not None:
                codes.update(dict.fromkeys(specimen.patient.diagnoses))
    return list(codes)
