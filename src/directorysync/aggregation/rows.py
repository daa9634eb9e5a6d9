"""Expand specimens into per-diagnosis input rows for the star model."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date

from directorysync.converters import convert_material, convert_sex
from directorysync.models import InputRow, SpecimenRecord

logger = logging.getLogger(__name__)


def years_between(start: date, end: date) -> int:
    """Completed years from ``start`` to ``end`` (negative if ``end`` is earlier)."""

    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def earliest_collection_dates(specimens: Iterable[SpecimenRecord]) -> dict[str, date]:
    """Map patient id to the earliest collection date over all their specimens."""

    earliest: dict[str, date] = {}
    for specimen in specimens:
        if specimen.patient is None or specimen.collected_on is None:
            continue
        patient_id = specimen.patient.patient_id
        current = earliest.get(patient_id)
        if current is None or specimen.collected_on < current:
            earliest[patient_id] = specimen.collected_on
    return earliest


def age_at_collection(birth_date: date | None, collected_on: date | None) -> str | None:
    if birth_date is None or collected_on is None:
        return None
    age = years_between(birth_date, collected_on)
    if age < 0:
        logger.warning("Negative age at collection (born %s, collected %s)", birth_date, collected_on)
        return None
    return str(age)


def explode_specimens(
    specimens_by_collection: Mapping[str, Sequence[SpecimenRecord]],
) -> dict[str, list[InputRow]]:
    """Build one :class:`InputRow` per (specimen, diagnosis) pair.

    Diagnoses are the distinct union of the patient's conditions and the
    specimen's own diagnoses. A specimen without any diagnosis contributes no
    rows, and a specimen without a patient is skipped. Ages are taken at the
    patient's earliest collection date across every collection.
    """

    first_collected = earliest_collection_dates(
        specimen for specimens in specimens_by_collection.values() for specimen in specimens
    )
    rows_by_collection: dict[str, list[InputRow]] = {}
    for collection_id, specimens in specimens_by_collection.items():
        rows: list[InputRow] = []
        for specimen in specimens:
            patient = specimen.patient
            if patient is None:
                logger.warning("Specimen %s has no patient, skipping", specimen.specimen_id)
                continue

            age = age_at_collection(patient.birth_date, first_collected.get(patient.patient_id))
            diagnoses = list(dict.fromkeys([*patient.diagnoses, *specimen.diagnoses]))
            for diagnosis in diagnoses:
                rows.append(
                    InputRow(
                        collection_id=collection_id,
                        material=convert_material(specimen.material),
                        patient_id=patient.patient_id,
                        sex=convert_sex(patient.sex),
                        age=age,
                        diagnosis=diagnosis,
                    )
                )
        if not rows:
            logger.warning("No star model rows for collection %s", collection_id)
        rows_by_collection[collection_id] = rows
    return rows_by_collection
