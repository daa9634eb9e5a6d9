import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from directorysync.models import Fact, PatientRecord, SpecimenRecord  # noqa: E402
from directorysync.quality import check_material_types, check_sample_count, run_sanity_checks  # noqa: E402

C1 = "bbmri-eric:ID:DE_BB1:collection:C1"


def _fact(sample_type: str, samples: int) -> Fact:
    return Fact(
        id=f"fact-{sample_type}-{samples}",
        collection=C1,
        sex="FEMALE",
        disease="urn:miriam:icd:C50",
        age_range="Adult",
        sample_type=sample_type,
        number_of_donors=samples,
        number_of_samples=samples,
        last_update="2024-01-01",
    )


def _specimens(material: str, count: int) -> dict[str, list[SpecimenRecord]]:
    patient = PatientRecord("P1")
    return {C1: [SpecimenRecord(f"S{i}", C1, patient=patient, material=material) for i in range(count)]}


def test_consistent_star_model_has_no_issues() -> None:
    facts = {C1: [_fact("SERUM", 3)]}

    assert run_sanity_checks(facts, _specimens("blood-serum", 3)) == []


def test_sample_count_mismatch_is_reported() -> None:
    issue = check_sample_count({C1: [_fact("SERUM", 5)]}, _specimens("blood-serum", 3))

    assert issue is not None
    assert issue.check == "sample_count"


def test_material_mismatch_is_reported() -> None:
    issues = run_sanity_checks({C1: [_fact("DNA", 1)]}, _specimens("blood-serum", 3))

    assert [issue.check for issue in issues] == ["material_types"]
    assert check_material_types({C1: []}, _specimens("blood-serum", 3)) is None
