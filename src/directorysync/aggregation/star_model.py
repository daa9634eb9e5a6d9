"""Build anonymized star-model fact tables from input rows."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date

from directorysync.aggregation.age_ranges import UNKNOWN, classify_age_range, parse_age
from directorysync.diagnosis import CorrectionMap, canonical_diagnosis
from directorysync.models import BBMRI_ERIC_ID_PREFIX, FACT_ID_PREFIX, Fact, FactKey, InputRow

logger = logging.getLogger(__name__)

# Material spellings used by older clinical exports.
LEGACY_MATERIAL_ALIASES: dict[str, str] = {
    "FFPE": "TISSUE_PARAFFIN_EMBEDDED",
    "Cryopreservation": "TISSUE_FROZEN",
    "Other": "OTHER",
}


@dataclass
class FactTableStats:
    """Counters accumulated over every ``build`` call of one builder."""

    rows_seen: int = 0
    rows_skipped: int = 0
    diagnoses_dropped: int = 0
    groups_suppressed: int = 0
    groups_truncated: int = 0
    facts_emitted: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "rows_seen": self.rows_seen,
            "rows_skipped": self.rows_skipped,
            "diagnoses_dropped": self.diagnoses_dropped,
            "groups_suppressed": self.groups_suppressed,
            "groups_truncated": self.groups_truncated,
            "facts_emitted": self.facts_emitted,
        }


@dataclass
class _GroupCounts:
    patients: set[str]
    samples: int = 0


def fact_id_stub(collection_id: str) -> str:
    """Prefix shared by every fact id of a collection."""

    local_part = collection_id
    if local_part.startswith(BBMRI_ERIC_ID_PREFIX):
        local_part = local_part[len(BBMRI_ERIC_ID_PREFIX):]
    return f"{FACT_ID_PREFIX}{local_part}:"


def fact_key_digest(key: FactKey) -> str:
    return hashlib.sha256(key.as_string().encode("utf-8")).hexdigest()[:16]


def assign_fact_ids(stub: str, keys: Iterable[FactKey]) -> dict[FactKey, str]:
    """Map each key to ``stub + digest``.

    Keys sharing a digest are ordered by :meth:`FactKey.as_string`; the first
    keeps the bare digest and the rest get ``-2``, ``-3`` and so on, so ids do
    not depend on row order.
    """

    by_digest: dict[str, list[FactKey]] = {}
    for key in keys:
        by_digest.setdefault(fact_key_digest(key), []).append(key)

    fact_ids: dict[FactKey, str] = {}
    for digest, colliding in by_digest.items():
        for position, key in enumerate(sorted(colliding, key=FactKey.as_string), start=1):
            fact_ids[key] = f"{stub}{digest}" if position == 1 else f"{stub}{digest}-{position}"
    return fact_ids


class StarModelFactTableBuilder:
    """Group rows into hypercube facts with minimum-donor suppression.

    ``number_of_samples`` counts rows, so a specimen carrying several
    diagnoses contributes to several groups. Rows without an age land in the
    ``Unknown`` age range unless ``skip_unknown_age`` is set.
    """

    def __init__(self, *, today: date | None = None, skip_unknown_age: bool = False) -> None:
        self.today = today
        self.skip_unknown_age = skip_unknown_age
        self.stats = FactTableStats()

    def build(
        self,
        collection_id: str,
        min_donors: int,
        max_facts: int,
        rows: Iterable[InputRow],
        corrections: CorrectionMap | None = None,
    ) -> list[Fact]:
        groups = self._group(rows, corrections)
        last_update = (self.today or date.today()).isoformat()
        stub = fact_id_stub(collection_id)

        selected: list[tuple[FactKey, _GroupCounts]] = []
        eligible = 0
        for key, counts in groups.items():
            if len(counts.patients) < min_donors:
                self.stats.groups_suppressed += 1
                continue

            eligible += 1
            if 0 <= max_facts <= len(selected):
                self.stats.groups_truncated += 1
                continue
            selected.append((key, counts))

        fact_ids = assign_fact_ids(stub, [key for key, _ in selected])
        facts = [
            Fact(
                id=fact_ids[key],
                collection=collection_id,
                sex=key.sex,
                disease=key.diagnosis,
                age_range=key.age_range,
                sample_type=key.material,
                number_of_donors=len(counts.patients),
                number_of_samples=counts.samples,
                last_update=last_update,
            )
            for key, counts in selected
        ]

        self.stats.facts_emitted += len(facts)
        if not facts:
            logger.warning("No facts for collection %s (%d groups)", collection_id, len(groups))
        else:
            logger.info(
                "Collection %s: %d facts from %d groups (%d eligible)",
                collection_id,
                len(facts),
                len(groups),
                eligible,
            )
        return facts

    def _group(
        self,
        rows: Iterable[InputRow],
        corrections: CorrectionMap | None,
    ) -> dict[FactKey, _GroupCounts]:
        groups: dict[FactKey, _GroupCounts] = {}
        for row in rows:
            self.stats.rows_seen += 1

            if not row.sex or not row.material or not row.patient_id:
                self.stats.rows_skipped += 1
                continue

            age_range = classify_age_range(parse_age(row.age))
            if age_range == UNKNOWN and self.skip_unknown_age:
                self.stats.rows_skipped += 1
                continue

            diagnosis = canonical_diagnosis(row.diagnosis, corrections)
            if not diagnosis:
                self.stats.diagnoses_dropped += 1
                continue

            key = FactKey(
                sex=row.sex.upper(),
                diagnosis=diagnosis,
                age_range=age_range,
                material=LEGACY_MATERIAL_ALIASES.get(row.material, row.material),
            )
            counts = groups.get(key)
            if counts is None:
                counts = groups[key] = _GroupCounts(patients=set())
            counts.patients.add(row.patient_id)
            counts.samples += 1
        return groups
