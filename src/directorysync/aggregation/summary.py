"""Fold specimens and patients into one summary per collection."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date

from directorysync.aggregation.rows import years_between
from directorysync.converters import (
    convert_material,
    convert_sex,
    convert_storage_temperature,
)
from directorysync.diagnosis import CorrectionMap, canonical_diagnosis
from directorysync.models import AGE_SENTINEL, CollectionSummary, PatientRecord, SpecimenRecord

logger = logging.getLogger(__name__)


class CollectionSummaryAggregator:
    """Compute collection-level statistics in Directory vocabulary.

    ``size`` counts specimens and ``number_of_donors`` counts distinct patients.
    Age bounds use each donor's current age; when no age is known both bounds
    hold the ``-1`` sentinel.
    """

    def __init__(self, today: date | None = None) -> None:
        self.today = today or date.today()

    def aggregate(
        self,
        specimens_by_collection: Mapping[str, Sequence[SpecimenRecord]],
        corrections: CorrectionMap | None = None,
    ) -> list[CollectionSummary]:
        summaries = []
        for collection_id, specimens in specimens_by_collection.items():
            summaries.append(self.summarize(collection_id, specimens, corrections))
        return summaries

    def summarize(
        self,
        collection_id: str,
        specimens: Sequence[SpecimenRecord],
        corrections: CorrectionMap | None = None,
    ) -> CollectionSummary:
        summary = CollectionSummary(id=collection_id, size=len(specimens))

        patients: dict[str, PatientRecord] = {}
        for specimen in specimens:
            if specimen.patient is not None:
                patients.setdefault(specimen.patient.patient_id, specimen.patient)

            material = convert_material(specimen.material)
            if material:
                summary.materials.add(material)
            for temperature in specimen.storage_temperatures:
                converted = convert_storage_temperature(temperature)
                if converted:
                    summary.storage_temperatures.add(converted)
            for diagnosis in specimen.diagnoses:
                corrected = canonical_diagnosis(diagnosis, corrections)
                if corrected:
                    summary.diagnosis_available.add(corrected)

        summary.number_of_donors = len(patients)
        ages = []
        for patient in patients.values():
            sex = convert_sex(patient.sex)
            if sex:
                summary.sex.add(sex)
            age = self.current_age(patient)
            if age is not None:
                ages.append(age)

        summary.age_low = min(ages) if ages else AGE_SENTINEL
        summary.age_high = max(ages) if ages else AGE_SENTINEL
        return summary

    def current_age(self, patient: PatientRecord) -> int | None:
        if patient.birth_date is None:
            return None
        age = years_between(patient.birth_date, self.today)
        if age < 0:
            logger.warning("Patient %s has a birth date in the future", patient.patient_id)
            return None
        return age
