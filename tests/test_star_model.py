import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from directorysync.aggregation import StarModelFactTableBuilder  # noqa: E402
from directorysync.aggregation import star_model  # noqa: E402
from directorysync.aggregation.star_model import fact_id_stub  # noqa: E402
from directorysync.models import InputRow  # noqa: E402

COLLECTION = "bbmri-eric:ID:DE_BB1:collection:C1"


def _row(patient: str, *, sex: str = "FEMALE", age: str | None = "30", diagnosis: str = "C50.1",
         material: str = "BLOOD") -> InputRow:
    return InputRow(
        collection_id=COLLECTION,
        material=material,
        patient_id=patient,
        sex=sex,
        age=age,
        diagnosis=diagnosis,
    )


def _builder() -> StarModelFactTableBuilder:
    return StarModelFactTableBuilder(today=date(2024, 5, 1))


def test_two_donors_form_one_fact() -> None:
    rows = [_row("P1", age="30"), _row("P2", age="31")]
    corrections = {"C50.1": "urn:miriam:icd:C50.1"}

    facts = _builder().build(COLLECTION, 2, -1, rows, corrections)

    assert len(facts) == 1
    fact = facts[0]
    assert fact.number_of_donors == 2
    assert fact.number_of_samples == 2
    assert fact.sample_type == "BLOOD"
    assert fact.age_range == "Adult"
    assert fact.sex == "FEMALE"
    assert fact.disease == "urn:miriam:icd:C50.1"
    assert fact.collection == COLLECTION
    assert fact.last_update == "2024-05-01"
    assert fact.id.startswith(fact_id_stub(COLLECTION))


def test_groups_below_min_donors_are_suppressed() -> None:
    rows = [_row("P1"), _row("P1"), _row("P2", sex="MALE")]
    builder = _builder()

    facts = builder.build(COLLECTION, 2, -1, rows)

    assert facts == []
    assert builder.stats.groups_suppressed == 2


def test_min_donors_zero_keeps_every_group() -> None:
    rows = [_row("P1"), _row("P2", sex="MALE"), _row("P3", diagnosis="E11")]

    facts = _builder().build(COLLECTION, 0, -1, rows)

    assert len(facts) == 3
    assert sum(fact.number_of_samples for fact in facts) == 3


def test_max_facts_caps_output() -> None:
    rows = [_row(f"P{i}", diagnosis=code) for i, code in enumerate(["C50", "C51", "C52", "C53", "C54"])]
    builder = _builder()

    facts = builder.build(COLLECTION, 1, 2, rows)

    assert [fact.disease for fact in facts] == ["urn:miriam:icd:C50", "urn:miriam:icd:C51"]
    assert builder.stats.groups_truncated == 3


def test_max_facts_zero_emits_nothing() -> None:
    facts = _builder().build(COLLECTION, 1, 0, [_row("P1")])

    assert facts == []


def test_discarded_diagnoses_and_incomplete_rows_are_dropped() -> None:
    rows = [
        _row("P1", diagnosis="Q99.9"),
        _row("P2", sex=""),
        InputRow(COLLECTION, None, "P3", "FEMALE", "30", "C50.1"),
        _row("P4"),
    ]
    builder = _builder()

    facts = builder.build(COLLECTION, 1, -1, rows, {"Q99.9": None})

    assert len(facts) == 1
    assert builder.stats.diagnoses_dropped == 1
    assert builder.stats.rows_skipped == 2


def test_unknown_age_is_its_own_bucket_unless_skipped() -> None:
    rows = [_row("P1", age=None), _row("P2", age="not-a-number")]

    kept = _builder().build(COLLECTION, 1, -1, rows)
    skipping = StarModelFactTableBuilder(today=date(2024, 5, 1), skip_unknown_age=True)
    skipped = skipping.build(COLLECTION, 1, -1, rows)

    assert [fact.age_range for fact in kept] == ["Unknown"]
    assert kept[0].number_of_donors == 2
    assert skipped == []


def test_fact_ids_are_stable_and_unique() -> None:
    rows = [_row("P1"), _row("P2", sex="MALE"), _row("P3", age="70")]

    first = _builder().build(COLLECTION, 1, -1, rows)
    second = _builder().build(COLLECTION, 1, -1, list(reversed(rows)))

    assert {fact.id for fact in first} == {fact.id for fact in second}
    assert len({fact.id for fact in first}) == 3


def test_legacy_material_names_are_mapped() -> None:
    rows = [_row("P1", material="FFPE")]

    facts = _builder().build(COLLECTION, 1, -1, rows)

    assert facts[0].sample_type == "TISSUE_PARAFFIN_EMBEDDED"


def test_fact_row_uses_string_counts() -> None:
    fact = _builder().build(COLLECTION, 1, -1, [_row("P1")])[0]

    row = fact.to_row()

    assert row["number_of_donors"] == "1"
    assert row["number_of_samples"] == "1"
    assert set(row) == {
        "id",
        "collection",
        "sex",
        "disease",
        "age_range",
        "sample_type",
        "number_of_donors",
        "number_of_samples",
        "last_update",
    }


def test_colliding_digests_get_order_independent_suffixes(monkeypatch) -> None:
    monkeypatch.setattr(star_model, "fact_key_digest", lambda key: "0" * 16)
    rows = [_row("P1", material="BLOOD"), _row("P2", material="SERUM"), _row("P3", material="DNA")]

    forward = {fact.sample_type: fact.id for fact in _builder().build(COLLECTION, 1, -1, rows)}
    backward = {fact.sample_type: fact.id for fact in _builder().build(COLLECTION, 1, -1, rows[::-1])}

    stub = fact_id_stub(COLLECTION) + "0" * 16
    assert forward == backward
    assert forward == {"BLOOD": stub, "DNA": f"{stub}-2", "SERUM": f"{stub}-3"}
