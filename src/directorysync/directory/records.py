"""Put/Get representations of Directory collection records."""

from __future__ import annotations

import copy
import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from directorysync.models import BbmriEricId, CollectionSummary

logger = logging.getLogger(__name__)

REGISTRY_OWNED_FIELDS: tuple[str, ...] = (
    "name",
    "description",
    "contact",
    "country",
    "biobank",
    "type",
    "data_categories",
    "network",
)

DEFAULT_COLLECTION_TYPE = ["SAMPLE"]
DEFAULT_DATA_CATEGORIES = ["BIOLOGICAL_SAMPLES"]


def order_of_magnitude(value: int) -> int:
    if value <= 0:
        return 0
    return int(math.floor(math.log10(value)))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, dict)) and len(value) == 0:
        return True
    return False


class CollectionPut:
    """Locally built collection entities, keyed by collection id."""

    def __init__(self, entities: Iterable[dict[str, Any]] | None = None) -> None:
        self.entities: list[dict[str, Any]] = list(entities or [])

    @classmethod
    def from_summaries(
        cls,
        summaries: Iterable[CollectionSummary],
        *,
        timestamp: datetime | None = None,
    ) -> CollectionPut:
        stamp = (timestamp or datetime.now()).isoformat(timespec="seconds")
        put = cls()
        for summary in summaries:
            put.entities.append(cls.entity_from_summary(summary, stamp))
        return put

    @staticmethod
    def entity_from_summary(summary: CollectionSummary, timestamp: str) -> dict[str, Any]:
        entity: dict[str, Any] = {
            "id": summary.id,
            "timestamp": timestamp,
            "size": summary.size,
            "order_of_magnitude": order_of_magnitude(summary.size),
            "number_of_donors": summary.number_of_donors,
            "order_of_magnitude_donors": order_of_magnitude(summary.number_of_donors),
            "sex": sorted(summary.sex),
            "materials": sorted(summary.materials),
            "storage_temperatures": sorted(summary.storage_temperatures),
            "diagnosis_available": sorted(summary.diagnosis_available),
        }
        if summary.has_age_bounds():
            entity["age_low"] = summary.age_low
            entity["age_high"] = summary.age_high
        return entity

    @property
    def collection_ids(self) -> list[str]:
        return [str(entity["id"]) for entity in self.entities]

    def entity(self, collection_id: str) -> dict[str, Any] | None:
        for entity in self.entities:
            if entity.get("id") == collection_id:
                return entity
        return None

    def set_field(self, collection_id: str, name: str, value: Any) -> bool:
        """Set ``name`` on a collection entity; empty values are ignored."""

        entity = self.entity(collection_id)
        if entity is None or _is_empty(value):
            return False
        entity[name] = copy.deepcopy(value)
        return True

    @property
    def country_code(self) -> str | None:
        """Country of the first entity, falling back to the one encoded in its id."""

        if not self.entities:
            return None
        first = self.entities[0]
        country = first.get("country")
        if country:
            return str(country).upper()
        parsed = BbmriEricId.parse(str(first.get("id", "")))
        if parsed is None:
            logger.warning("Cannot derive a country code from collection id %s", first.get("id"))
            return None
        return parsed.country_code

    def prepared_entities(self) -> list[dict[str, Any]]:
        """Copies of the entities ready for transmission.

        Empty lists are removed and attributes the Directory requires are
        filled in with defaults.
        """

        country = self.country_code
        prepared = []
        for entity in self.entities:
            cleaned = {
                key: copy.deepcopy(value)
                for key, value in entity.items()
                if not (isinstance(value, list) and (not value or value == [None]))
            }
            if country:
                cleaned.setdefault("country", country)
                cleaned.setdefault("national_node", country)
            cleaned.setdefault("timestamp", datetime.now().isoformat(timespec="seconds"))
            if isinstance(cleaned.get("biobank"), str):
                cleaned.setdefault("biobank_label", cleaned["biobank"])
            cleaned.setdefault("type", list(DEFAULT_COLLECTION_TYPE))
            cleaned.setdefault("data_categories", list(DEFAULT_DATA_CATEGORIES))
            prepared.append(cleaned)
        return prepared

    def to_payload(self) -> dict[str, Any]:
        return {"entities": self.prepared_entities()}


def _reference_id(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


@dataclass
class CollectionGet:
    """Collection records as stored in the Directory."""

    items: list[dict[str, Any]] = field(default_factory=list)
    mock: bool = False

    def __len__(self) -> int:
        return len(self.items)

    def item(self, collection_id: str) -> dict[str, Any] | None:
        for item in self.items:
            if item.get("id") == collection_id:
                return item
        return None

    def registry_fields(self, collection_id: str) -> dict[str, Any] | None:
        """Flatten the registry-owned attributes of one collection.

        Nested ``{"id": ...}`` references become plain ids, and list-valued
        references become lists of ids.
        """

        item = self.item(collection_id)
        if item is None:
            return None

        fields: dict[str, Any] = {}
        for name in REGISTRY_OWNED_FIELDS:
            value = item.get(name)
            if isinstance(value, list):
                fields[name] = [_reference_id(entry) for entry in value if _reference_id(entry)]
            else:
                fields[name] = _reference_id(value)
        return fields
