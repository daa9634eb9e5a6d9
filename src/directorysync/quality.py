"""Sanity checks comparing uploaded facts with the clinical store."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from directorysync.aggregation.star_model import LEGACY_MATERIAL_ALIASES
from directorysync.converters import convert_material
from directorysync.models import Fact, SpecimenRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SanityIssue:
    """Describes a mismatch between the star model and its source data."""

    check: str
    message: str


def check_sample_count(
    facts_by_collection: Mapping[str, Sequence[Fact]],
    specimens_by_collection: Mapping[str, Sequence[SpecimenRecord]],
) -> SanityIssue | None:
    """Facts must not claim more samples than the store holds.

    Rows are exploded per diagnosis, so specimens with several diagnoses make
    this fire even though nothing was lost.
    """

    store_count = sum(len(specimens) for specimens in specimens_by_collection.values())
    fact_count = sum(fact.number_of_samples for facts in facts_by_collection.values() for fact in facts)
    if fact_count <= store_count:
        return None
    return SanityIssue(
        check="sample_count",
        message=f"Star model sample count ({fact_count}) exceeds store specimen count ({store_count})",
    )


def check_material_types(
    facts_by_collection: Mapping[str, Sequence[Fact]],
    specimens_by_collection: Mapping[str, Sequence[SpecimenRecord]],
) -> SanityIssue | None:
    store_materials: set[str] = set()
    for specimens in specimens_by_collection.values():
        for specimen in specimens:
            material = convert_material(specimen.material)
            if material:
                store_materials.add(LEGACY_MATERIAL_ALIASES.get(material, material))

    fact_materials = {fact.sample_type for facts in facts_by_collection.values() for fact in facts}
    if fact_materials <= store_materials:
        return None
    return SanityIssue(
        check="material_types",
        message=(
            f"Star model material types {sorted(fact_materials - store_materials)} "
            f"are not present in the store ({sorted(store_materials)})"
        ),
    )


def run_sanity_checks(
    facts_by_collection: Mapping[str, Sequence[Fact]],
    specimens_by_collection: Mapping[str, Sequence[SpecimenRecord]],
) -> list[SanityIssue]:
    issues = []
    for check in (check_sample_count, check_material_types):
        issue = check(facts_by_collection, specimens_by_collection)
        if issue is not None:
            logger.warning("Sanity check %s: %s", issue.check, issue.message)
            issues.append(issue)
    return issues
