import json
import sys
from datetime import date
from pathlib import Path
from typing import Any

import pytest
import requests

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from directorysync.errors import ClinicalStoreError  # noqa: E402
from directorysync.models import SpecimenRecord  # noqa: E402
from directorysync.sources import (  # noqa: E402
    BBMRI_ERIC_IDENTIFIER_SYSTEM,
    BIOBANK_PROFILE,
    COLLECTION_PROFILE,
    CsvClinicalStore,
    FhirStoreClient,
    resolve_default_collection,
)
from directorysync.sources.fhir import (  # noqa: E402
    CUSTODIAN_EXTENSION,
    ICD10_SYSTEM,
    SAMPLE_DIAGNOSIS_EXTENSION,
    STORAGE_TEMPERATURE_EXTENSION,
    parse_fhir_date,
)

C1 = "bbmri-eric:ID:DE_BB1:collection:C1"
C2 = "bbmri-eric:ID:DE_BB1:collection:C2"


def _organization(org_id: str, identifier: str, profile: str) -> dict[str, Any]:
    return {
        "resourceType": "Organization",
        "id": org_id,
        "meta": {"profile": [profile]},
        "identifier": [{"system": BBMRI_ERIC_IDENTIFIER_SYSTEM, "value": identifier}],
        "name": "Local name",
    }


def _write_specimens(path: Path) -> None:
    path.write_text(
        "specimen_id,collection_id,patient_id,sex,birth_date,material,storage_temperature,"
        "sample_diagnoses,patient_diagnoses,collected_on\n"
        f"S1,{C1},P1,female,1980-02-01,blood-serum,temperature2to10;temperatureGN,C50.1,E11,2020-01-01\n"
        f"S2,{C1},P1,female,1980-02-01,whole-blood,,,E11;I10,2021-01-01\n"
        "S3,,P2,male,1970-05-05,dna,,C61,,\n"
    )


def test_resolve_default_collection_prefers_configured_id() -> None:
    orphan = SpecimenRecord("S9", None)
    grouped = {C1: [SpecimenRecord("S1", C1)], None: [orphan]}

    resolved = resolve_default_collection(grouped, C2)

    assert [s.specimen_id for s in resolved[C2]] == ["S9"]
    assert orphan.collection_id == C2


def test_resolve_default_collection_uses_single_collection_or_drops() -> None:
    grouped = {C1: [SpecimenRecord("S1", C1)], None: [SpecimenRecord("S9", None)]}
    assert len(resolve_default_collection(grouped, None)[C1]) == 2

    ambiguous = {
        C1: [SpecimenRecord("S1", C1)],
        C2: [SpecimenRecord("S2", C2)],
        None: [SpecimenRecord("S9", None)],
    }
    resolved = resolve_default_collection(ambiguous, "malformed-id")
    assert sum(len(items) for items in resolved.values()) == 2


def test_csv_store_groups_specimens(tmp_path: Path) -> None:
    specimens_path = tmp_path / "specimens.csv"
    _write_specimens(specimens_path)
    store = CsvClinicalStore(specimens_path=specimens_path, chunksize=2)

    grouped = store.fetch_specimens_by_collection(C2)

    assert [s.specimen_id for s in grouped[C1]] == ["S1", "S2"]
    assert [s.specimen_id for s in grouped[C2]] == ["S3"]
    first = grouped[C1][0]
    assert first.storage_temperatures == ["temperature2to10", "temperatureGN"]
    assert first.patient is grouped[C1][1].patient
    assert first.patient.diagnoses == ["E11", "I10"]
    assert first.patient.birth_date == date(1980, 2, 1)
    assert grouped[C2][0].collected_on is None
    assert sorted(store.fetch_diagnoses(C2)) == ["C50.1", "C61", "E11", "I10"]


def test_csv_store_organizations_round_trip(tmp_path: Path) -> None:
    specimens_path = tmp_path / "specimens.csv"
    _write_specimens(specimens_path)
    organizations_path = tmp_path / "organizations.json"
    organizations_path.write_text(
        json.dumps(
            [
                _organization("bb1", "bbmri-eric:ID:DE_BB1", BIOBANK_PROFILE),
                _organization("c1", C1, COLLECTION_PROFILE),
            ]
        )
    )
    store = CsvClinicalStore(specimens_path=specimens_path, organizations_path=organizations_path)

    biobank = store.list_biobanks()[0]
    biobank["name"] = "Directory name"
    store.update_entity(biobank)

    assert store.list_biobanks()[0]["name"] == "Directory name"
    assert [org["id"] for org in store.list_collections([C1])] == ["c1"]
    assert store.list_collections([C2]) == []
    with pytest.raises(ClinicalStoreError):
        store.update_entity({"id": "unknown"})


def test_csv_store_missing_file_raises(tmp_path: Path) -> None:
    store = CsvClinicalStore(specimens_path=tmp_path / "missing.csv")

    with pytest.raises(ClinicalStoreError):
        store.fetch_specimens_by_collection()


def test_csv_store_wraps_unreadable_files(tmp_path: Path) -> None:
    unterminated = tmp_path / "unterminated.csv"
    unterminated.write_text(f'specimen_id,collection_id\nS1,"{C1}\n')
    undecodable = tmp_path / "undecodable.csv"
    undecodable.write_bytes(b"specimen_id,collection_id\nS1,\xff\xfe\xfa\n")

    for path in (unterminated, undecodable):
        with pytest.raises(ClinicalStoreError, match="Unreadable specimen file"):
            CsvClinicalStore(specimens_path=path).fetch_specimens_by_collection()


class _FhirResponse:
    def __init__(self, payload: dict[str, Any], status: int = 200) -> None:
        self.payload = payload
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> dict[str, Any]:
        return self.payload


class _FhirSession:
    def __init__(self, pages: dict[str, dict[str, Any]]) -> None:
        self.pages = pages
        self.puts: list[tuple[str, dict[str, Any]]] = []

    def get(self, url: str, params: Any = None, timeout: float = 0) -> _FhirResponse:
        if url not in self.pages:
            return _FhirResponse({}, status=500)
        return _FhirResponse(self.pages[url])

    def put(self, url: str, json: Any = None, timeout: float = 0) -> _FhirResponse:
        self.puts.append((url, json))
        return _FhirResponse({})


def _bundle(resources: list[dict[str, Any]], next_url: str | None = None) -> dict[str, Any]:
    bundle: dict[str, Any] = {
        "resourceType": "Bundle",
        "entry": [{"resource": resource} for resource in resources],
    }
    if next_url:
        bundle["link"] = [{"relation": "next", "url": next_url}]
    return bundle


def _specimen(specimen_id: str, patient_id: str, custodian: str | None) -> dict[str, Any]:
    extensions = [
        {
            "url": STORAGE_TEMPERATURE_EXTENSION,
            "valueCodeableConcept": {"coding": [{"code": "temperature-18to-35"}]},
        },
        {
            "url": SAMPLE_DIAGNOSIS_EXTENSION,
            "valueCodeableConcept": {"coding": [{"system": ICD10_SYSTEM, "code": "C50.1"}]},
        },
    ]
    if custodian:
        extensions.append(
            {"url": CUSTODIAN_EXTENSION, "valueReference": {"reference": f"Organization/{custodian}"}}
        )
    return {
        "resourceType": "Specimen",
        "id": specimen_id,
        "subject": {"reference": f"Patient/{patient_id}"},
        "type": {"coding": [{"code": "whole-blood"}]},
        "collection": {"collectedDateTime": "2019-03-04T10:00:00Z"},
        "extension": extensions,
    }


def _fhir_store() -> tuple[FhirStoreClient, _FhirSession]:
    base = "http://fhir.example.org/fhir"
    session = _FhirSession(
        {
            f"{base}/Organization": _bundle(
                [
                    _organization("bb1", "bbmri-eric:ID:DE_BB1", BIOBANK_PROFILE),
                    _organization("c1", C1, COLLECTION_PROFILE),
                ]
            ),
            f"{base}/Patient": _bundle(
                [{"resourceType": "Patient", "id": "p1", "gender": "female", "birthDate": "1975"}]
            ),
            f"{base}/Condition": _bundle(
                [
                    {
                        "resourceType": "Condition",
                        "id": "cond1",
                        "subject": {"reference": "Patient/p1"},
                        "code": {"coding": [{"system": ICD10_SYSTEM, "code": "E11"}]},
                    }
                ]
            ),
            f"{base}/Specimen": _bundle([_specimen("s1", "p1", "c1")], next_url=f"{base}/Specimen?page=2"),
            f"{base}/Specimen?page=2": _bundle([_specimen("s2", "p1", None)]),
        }
    )
    return FhirStoreClient(base, session=session), session


def test_parse_fhir_date_handles_partial_dates() -> None:
    assert parse_fhir_date("1975") == date(1975, 1, 1)
    assert parse_fhir_date("1975-06") == date(1975, 6, 1)
    assert parse_fhir_date("2019-03-04T10:00:00Z") == date(2019, 3, 4)
    assert parse_fhir_date("garbage") is None
    assert parse_fhir_date(None) is None


def test_fhir_store_follows_paging_and_resolves_collections() -> None:
    store, _ = _fhir_store()

    grouped = store.fetch_specimens_by_collection()

    assert list(grouped) == [C1]
    specimens = grouped[C1]
    assert [s.specimen_id for s in specimens] == ["s1", "s2"]
    assert specimens[0].material == "whole-blood"
    assert specimens[0].storage_temperatures == ["temperature-18to-35"]
    assert specimens[0].diagnoses == ["C50.1"]
    assert specimens[0].patient.diagnoses == ["E11"]
    assert specimens[0].patient.birth_date == date(1975, 1, 1)
    assert specimens[0].collected_on == date(2019, 3, 4)


def test_fhir_store_lists_and_updates_organizations() -> None:
    store, session = _fhir_store()

    biobanks = store.list_biobanks()
    store.update_entity(biobanks[0])

    assert [org["id"] for org in biobanks] == ["bb1"]
    assert [org["id"] for org in store.list_collections([C1])] == ["c1"]
    assert session.puts[0][0] == "http://fhir.example.org/fhir/Organization/bb1"


def test_fhir_store_wraps_server_errors() -> None:
    store = FhirStoreClient("http://fhir.example.org/fhir", session=_FhirSession({}))

    with pytest.raises(ClinicalStoreError):
        store.list_biobanks()


def test_fhir_store_skips_resources_without_id() -> None:
    store, session = _fhir_store()
    base = "http://fhir.example.org/fhir"
    session.pages[f"{base}/Organization"]["entry"].append(
        {"resource": {"resourceType": "Organization", "name": "No id"}}
    )
    session.pages[f"{base}/Patient"]["entry"].append(
        {"resource": {"resourceType": "Patient", "gender": "male"}}
    )

    grouped = store.fetch_specimens_by_collection()

    assert [s.specimen_id for s in grouped[C1]] == ["s1", "s2"]
    assert grouped[C1][0].patient.patient_id == "p1"
