import sys
from datetime import date
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from directorysync.directory import CollectionGet, InMemoryRegistryClient  # noqa: E402
from directorysync.errors import RegistryError  # noqa: E402
from directorysync.models import PatientRecord, SpecimenRecord  # noqa: E402
from directorysync.sources import BBMRI_ERIC_IDENTIFIER_SYSTEM, COLLECTION_PROFILE, ClinicalStore  # noqa: E402
from directorysync.tasks import CollectionUpdateTask, ImportTask  # noqa: E402

C1 = "bbmri-eric:ID:DE_BB1:collection:C1"
C2 = "bbmri-eric:ID:AT_BB2:collection:C2"


class _CollectionStore(ClinicalStore):
    name = "collections-only"

    def __init__(self) -> None:
        self.organizations = [
            {
                "resourceType": "Organization",
                "id": org_id,
                "meta": {"profile": [COLLECTION_PROFILE]},
                "identifier": [{"system": BBMRI_ERIC_IDENTIFIER_SYSTEM, "value": identifier}],
                "name": "Local",
            }
            for org_id, identifier in (("c1", C1), ("c2", C2))
        ]
        self.updated: list[str] = []

    def fetch_specimens_by_collection(self, default_collection_id: str | None = None) -> dict:
        return {}

    def list_biobanks(self) -> list[dict[str, Any]]:
        return []

    def list_collections(self, collection_ids=None) -> list[dict[str, Any]]:
        return self.organizations

    def update_entity(self, entity) -> None:
        self.updated.append(entity["id"])


def _specimens(collection_id: str) -> list[SpecimenRecord]:
    patient = PatientRecord("P1", sex="male", birth_date=date(1960, 1, 1))
    return [SpecimenRecord("S1", collection_id, patient=patient, material="dna")]


def test_collection_update_groups_by_country() -> None:
    client = InMemoryRegistryClient(collections=[{"id": C1, "name": "One"}, {"id": C2, "name": "Two"}])
    calls: list[str | None] = []
    original = client.get_collections

    def _recording_get(country_code, collection_ids):
        calls.append(country_code)
        return original(country_code, collection_ids)

    client.get_collections = _recording_get

    result = CollectionUpdateTask(client, today=date(2024, 1, 1)).run(
        {C1: _specimens(C1), C2: _specimens(C2)}, {}
    )

    assert result.updated == 2
    assert calls == ["DE", "AT"]
    assert {entity["name"] for entity in client.written_entities} == {"One", "Two"}


def test_collection_update_fails_when_registry_knows_none() -> None:
    client = InMemoryRegistryClient()
    client.get_collections = lambda country_code, collection_ids: CollectionGet(
        items=[{"id": "bbmri-eric:ID:DE_BB1:collection:OTHER", "name": "Other"}]
    )

    with pytest.raises(RegistryError):
        CollectionUpdateTask(client).run({C1: _specimens(C1)}, {})


def test_import_task_updates_known_collections_only() -> None:
    client = InMemoryRegistryClient(collections=[{"id": C1, "name": "Directory one", "url": "https://one.example.org"}])
    store = _CollectionStore()

    result = ImportTask(client, store).run(biobanks=False, collections=True)

    assert result.collections_written == 1
    assert result.skipped == [C2]
    assert store.updated == ["c1"]
    assert store.organizations[0]["name"] == "Directory one"
    assert store.organizations[0]["telecom"] == [{"system": "url", "value": "https://one.example.org"}]
