"""Individual steps of a Directory sync attempt."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from directorysync.aggregation import (
    CollectionSummaryAggregator,
    StarModelFactTableBuilder,
    explode_specimens,
)
from directorysync.diagnosis import CorrectionMap
from directorysync.directory import CollectionPut, RegistryClient, country_code_of, merge
from directorysync.errors import RegistryError
from directorysync.models import BbmriEricId, Fact, SpecimenRecord
from directorysync.quality import SanityIssue, run_sanity_checks
from directorysync.sources import ClinicalStore, bbmri_eric_identifier
from directorysync.updater import BIOBANK_UPDATERS, COLLECTION_UPDATERS, ChangeDetectingUpdater

logger = logging.getLogger(__name__)

SpecimenGroups = Mapping[str, Sequence[SpecimenRecord]]


@dataclass
class StarModelResult:
    facts_by_collection: dict[str, list[Fact]] = field(default_factory=dict)
    uploaded: int = 0
    issues: list[SanityIssue] = field(default_factory=list)


class StarModelTask:
    """Build per-collection fact tables and replace them in the Directory."""

    def __init__(
        self,
        client: RegistryClient,
        *,
        min_donors: int,
        max_facts: int,
        today: date | None = None,
        skip_unknown_age: bool = False,
    ) -> None:
        self.client = client
        self.min_donors = min_donors
        self.max_facts = max_facts
        self.builder = StarModelFactTableBuilder(today=today, skip_unknown_age=skip_unknown_age)

    def run(self, specimens: SpecimenGroups, corrections: CorrectionMap) -> StarModelResult:
        result = StarModelResult()
        for collection_id, rows in explode_specimens(specimens).items():
            result.facts_by_collection[collection_id] = self.builder.build(
                collection_id, self.min_donors, self.max_facts, rows, corrections
            )

        result.uploaded = self.client.update_star_model(result.facts_by_collection)
        result.issues = run_sanity_checks(result.facts_by_collection, specimens)
        return result


@dataclass
class CollectionUpdateResult:
    updated: int = 0
    missing: list[str] = field(default_factory=list)


class CollectionUpdateTask:
    """Push aggregated collection attributes, merged with Directory-owned fields.

    Collections are handled per country, since the Directory keeps national
    tables apart.
    """

    def __init__(self, client: RegistryClient, *, today: date | None = None) -> None:
        self.client = client
        self.aggregator = CollectionSummaryAggregator(today=today)

    def run(
        self,
        specimens: SpecimenGroups,
        corrections: CorrectionMap,
        *,
        timestamp: datetime | None = None,
    ) -> CollectionUpdateResult:
        result = CollectionUpdateResult()
        summaries = self.aggregator.aggregate(specimens, corrections)
        if not summaries:
            logger.warning("No collections to update")
            return result

        stamp = (timestamp or datetime.now()).isoformat(timespec="seconds")
        by_country: dict[str | None, CollectionPut] = {}
        for summary in summaries:
            put = by_country.setdefault(country_code_of(summary.id), CollectionPut())
            put.entities.append(CollectionPut.entity_from_summary(summary, stamp))

        for country, put in by_country.items():
            get = self.client.get_collections(country, put.collection_ids)
            outcome = merge(get, put)
            if not outcome:
                raise RegistryError(
                    f"None of the collections {put.collection_ids} could be merged with Directory data"
                )
            result.missing.extend(outcome.missing)
            self.client.put_collections(country, put)
            result.updated += len(put.entities)
            logger.info("Updated %d collections for country %s", len(put.entities), country)
        return result


@dataclass
class ImportResult:
    biobanks_written: int = 0
    collections_written: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def entities_written(self) -> int:
        return self.biobanks_written + self.collections_written


class ImportTask:
    """Copy Directory metadata into the clinical store's Organization resources."""

    def __init__(
        self,
        client: RegistryClient,
        store: ClinicalStore,
        *,
        updater: ChangeDetectingUpdater | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.updater = updater or ChangeDetectingUpdater()

    def run(
        self,
        *,
        biobanks: bool = True,
        collections: bool = False,
        collection_ids: Sequence[str] = (),
    ) -> ImportResult:
        result = ImportResult()
        if biobanks:
            self._import_biobanks(result)
        if collections:
            self._import_collections(result, collection_ids)
        return result

    def _import_biobanks(self, result: ImportResult) -> None:
        for organization in self.store.list_biobanks():
            raw_id = bbmri_eric_identifier(organization)
            biobank_id = BbmriEricId.parse(raw_id)
            if biobank_id is None:
                logger.warning("Biobank %s has no usable BBMRI-ERIC identifier", organization.get("id"))
                result.skipped.append(str(organization.get("id")))
                continue

            record = self.client.fetch_biobank(biobank_id)
            if record is None:
                logger.warning("Biobank %s not found in the Directory", biobank_id)
                result.skipped.append(str(biobank_id))
                continue

            if self.updater.update_if_changed(organization, record, BIOBANK_UPDATERS):
                self.store.update_entity(organization)
                result.biobanks_written += 1

    def _import_collections(self, result: ImportResult, collection_ids: Sequence[str]) -> None:
        organizations = self.store.list_collections(list(collection_ids) or None)
        if not organizations:
            logger.info("No matching collections in the clinical store")
            return

        by_country: dict[str | None, dict[str, dict]] = {}
        for organization in organizations:
            identifier = bbmri_eric_identifier(organization)
            if not identifier:
                result.skipped.append(str(organization.get("id")))
                continue
            by_country.setdefault(country_code_of(identifier), {})[identifier] = organization

        for country, wanted in by_country.items():
            get = self.client.get_collections(country, list(wanted))
            for identifier, organization in wanted.items():
                record = get.item(identifier)
                if record is None:
                    logger.warning("Collection %s not found in the Directory", identifier)
                    result.skipped.append(identifier)
                    continue
                if self.updater.update_if_changed(organization, record, COLLECTION_UPDATERS):
                    self.store.update_entity(organization)
                    result.collections_written += 1
