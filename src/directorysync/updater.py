"""Write Directory metadata back into clinical-store Organization resources."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DESCRIPTION_EXTENSION = "https://fhir.bbmri.de/StructureDefinition/OrganizationDescription"
JURIDICAL_PERSON_EXTENSION = "https://fhir.bbmri.de/StructureDefinition/JuridicalPerson"
CAPABILITIES_EXTENSION = "https://fhir.bbmri.de/StructureDefinition/Capabilities"
CAPABILITIES_SYSTEM = "https://samply.github.io/bbmri-fhir-ig/ValueSet-BiobankCapabilities.html"

Entity = MutableMapping[str, Any]
FieldUpdater = Callable[[Entity, Mapping[str, Any]], None]


@dataclass(frozen=True)
class ChangeSnapshot:
    """Deep copy of an entity taken before any updater runs."""

    original: dict[str, Any]

    @classmethod
    def take(cls, entity: Mapping[str, Any]) -> ChangeSnapshot:
        return cls(original=copy.deepcopy(dict(entity)))

    def differs_from(self, entity: Mapping[str, Any]) -> bool:
        return self.original != dict(entity)


class ChangeDetectingUpdater:
    """Apply field updaters and report whether the entity actually changed."""

    def update_if_changed(
        self,
        entity: Entity,
        registry_data: Mapping[str, Any] | None,
        field_updaters: Sequence[FieldUpdater],
    ) -> bool:
        """Return True when ``entity`` differs from its pre-update snapshot.

        A False result means no write is needed; persisting a changed entity
        is left to the caller.
        """

        snapshot = ChangeSnapshot.take(entity)
        data = registry_data or {}
        for updater in field_updaters:
            updater(entity, data)

        changed = snapshot.differs_from(entity)
        if not changed:
            logger.debug("No changes for %s, no write needed", entity.get("id"))
        return changed


def _text(value: Any, key: str = "id") -> str | None:
    if isinstance(value, Mapping):
        value = value.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _replace_extension(entity: Entity, url: str, extensions: list[dict[str, Any]]) -> None:
    kept = [ext for ext in entity.get("extension") or [] if ext.get("url") != url]
    entity["extension"] = kept + extensions


def update_name(entity: Entity, data: Mapping[str, Any]) -> None:
    name = _text(data.get("name"))
    if name:
        entity["name"] = name


def update_description(entity: Entity, data: Mapping[str, Any]) -> None:
    description = _text(data.get("description"))
    if description:
        _replace_extension(
            entity,
            DESCRIPTION_EXTENSION,
            [{"url": DESCRIPTION_EXTENSION, "valueString": description}],
        )


def update_juridical_person(entity: Entity, data: Mapping[str, Any]) -> None:
    person = _text(data.get("juridical_person"))
    if person:
        _replace_extension(
            entity,
            JURIDICAL_PERSON_EXTENSION,
            [{"url": JURIDICAL_PERSON_EXTENSION, "valueString": person}],
        )


def update_alias(entity: Entity, data: Mapping[str, Any]) -> None:
    acronym = _text(data.get("acronym"))
    if acronym:
        entity["alias"] = [acronym]


def update_capabilities(entity: Entity, data: Mapping[str, Any]) -> None:
    capabilities = data.get("capabilities") or []
    if not capabilities:
        return
    extensions = []
    for capability in capabilities:
        coding = {"system": CAPABILITIES_SYSTEM, "code": _text(capability, "id")}
        label = _text(capability, "label")
        if label:
            coding["display"] = label
        extensions.append(
            {"url": CAPABILITIES_EXTENSION, "valueCodeableConcept": {"coding": [coding]}}
        )
    _replace_extension(entity, CAPABILITIES_EXTENSION, extensions)


def _purpose_code(contact: Mapping[str, Any]) -> str | None:
    codings = (contact.get("purpose") or {}).get("coding") or []
    return codings[0].get("code") if codings else None


def set_contact_email(entity: Entity, email: str, purpose_code: str, purpose_display: str) -> None:
    """Set the email of the contact with the given purpose, creating it if needed."""

    contacts = entity.setdefault("contact", [])
    contact = next((c for c in contacts if _purpose_code(c) == purpose_code), None)
    if contact is None:
        contact = {}
        contacts.append(contact)

    telecom = [t for t in contact.get("telecom") or [] if t.get("system") != "email"]
    telecom.append({"system": "email", "value": email})
    contact["purpose"] = {"coding": [{"code": purpose_code, "display": purpose_display}]}
    contact["telecom"] = telecom


def update_contact(entity: Entity, data: Mapping[str, Any]) -> None:
    head = _text(data.get("head"), "email")
    if head:
        set_contact_email(entity, head, "ADMIN", "Administrative")
    research = _text(data.get("contact"), "email")
    if research:
        set_contact_email(entity, research, "RESEARCH", "Research")


def update_address(entity: Entity, data: Mapping[str, Any]) -> None:
    city = _text(data.get("location"))
    country = _text(data.get("country"))
    if not city and not country:
        return

    addresses = entity.get("address") or []
    address = dict(addresses[0]) if addresses else {}
    if city:
        address["city"] = city
    if country:
        address["country"] = country
    entity["address"] = [address]


def update_telecom(entity: Entity, data: Mapping[str, Any]) -> None:
    url = _text(data.get("url"))
    if not url:
        return
    telecom = [t for t in entity.get("telecom") or [] if t.get("system") != "url"]
    telecom.append({"system": "url", "value": url})
    entity["telecom"] = telecom


BIOBANK_UPDATERS: tuple[FieldUpdater, ...] = (
    update_name,
    update_description,
    update_juridical_person,
    update_alias,
    update_capabilities,
    update_contact,
    update_address,
    update_telecom,
)

COLLECTION_UPDATERS: tuple[FieldUpdater, ...] = (
    update_name,
    update_description,
    update_contact,
    update_address,
    update_telecom,
)
