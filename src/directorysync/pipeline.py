"""Directory sync orchestrator with bounded whole-run retry."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

import requests

from directorysync.aggregation import FactTableStats
from directorysync.config import RetryPolicy, SyncConfiguration
from directorysync.diagnosis import CorrectionMap, CorrectionReport, DiagnosisCodeCorrector
from directorysync.directory import RegistryClient
from directorysync.errors import DirectorySyncError
from directorysync.sources import ClinicalStore, distinct_diagnoses
from directorysync.sources.base import SpecimensByCollection
from directorysync.tasks import CollectionUpdateTask, ImportTask, StarModelTask

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    INIT = "INIT"
    LOGIN = "LOGIN"
    DIAGNOSIS_CORRECTION = "DIAGNOSIS_CORRECTION"
    STAR_MODEL_UPDATE = "STAR_MODEL_UPDATE"
    COLLECTION_UPDATE = "COLLECTION_UPDATE"
    BIOBANK_UPDATE = "BIOBANK_UPDATE"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class SyncRunReport:
    """Execution summary of a sync run; per-attempt fields describe the last attempt."""

    success: bool = False
    attempts: int = 0
    states: list[SyncState] = field(default_factory=list)
    skipped: list[SyncState] = field(default_factory=list)
    failed_state: SyncState | None = None
    error: str | None = None
    corrections: CorrectionReport = field(default_factory=CorrectionReport)
    fact_stats: FactTableStats = field(default_factory=FactTableStats)
    facts_uploaded: int = 0
    collections_updated: int = 0
    merge_missing: list[str] = field(default_factory=list)
    entities_written: int = 0
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "attempts": self.attempts,
            "states": [state.value for state in self.states],
            "skipped": [state.value for state in self.skipped],
            "failed_state": self.failed_state.value if self.failed_state else None,
            "error": self.error,
            "corrections": self.corrections.as_dict(),
            "fact_stats": self.fact_stats.as_dict(),
            "facts_uploaded": self.facts_uploaded,
            "collections_updated": self.collections_updated,
            "merge_missing": list(self.merge_missing),
            "entities_written": self.entities_written,
            "warnings": list(self.warnings),
        }


class SyncOrchestrator:
    """Run login, diagnosis correction, uploads and imports in order.

    A failure in any state aborts the attempt; the whole sequence is then
    retried from ``INIT`` until the retry policy is exhausted. Exceptions from
    collaborators never escape :meth:`run`.
    """

    def __init__(
        self,
        config: SyncConfiguration,
        store: ClinicalStore,
        client: RegistryClient,
        *,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        today: date | None = None,
        validity_cache: MutableMapping[str, bool] | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.client = client
        self.retry_policy = retry_policy or config.retry
        self.sleep = sleep
        self.today = today
        self.validity_cache: MutableMapping[str, bool] = (
            validity_cache if validity_cache is not None else {}
        )

    def run(self) -> SyncRunReport:
        report = SyncRunReport()
        for attempt in range(1, self.retry_policy.max_attempts + 1):
            delay = self.retry_policy.delay_before(attempt)
            if delay > 0:
                logger.info("Retrying sync in %.1f seconds", delay)
                self.sleep(delay)
            if attempt > 1:
                logger.info("Sync attempt %d of %d", attempt, self.retry_policy.max_attempts)

            report = SyncRunReport(attempts=attempt)
            try:
                self._attempt(report)
            except (DirectorySyncError, requests.RequestException) as exc:
                report.failed_state = report.states[-1] if report.states else SyncState.INIT
                report.error = str(exc)
                report.states.append(SyncState.FAILED)
                logger.error("Sync failed in state %s: %s", report.failed_state.value, exc)
                continue

            report.success = True
            logger.info("Sync finished after %d attempt(s)", attempt)
            return report

        logger.error("Sync gave up after %d attempt(s)", report.attempts)
        return report

    def _attempt(self, report: SyncRunReport) -> None:
        report.states.append(SyncState.INIT)

        report.states.append(SyncState.LOGIN)
        self.client.login()
        if self.config.only_login:
            logger.info("Login succeeded, stopping as configured")
            report.states.append(SyncState.DONE)
            return

        report.states.append(SyncState.DIAGNOSIS_CORRECTION)
        specimens = self.store.fetch_specimens_by_collection(self.config.default_collection_id)
        if not specimens:
            report.warnings.append("Clinical store returned no specimens")
        corrections = self._correct_diagnoses(specimens, report)

        if self.config.allow_star_model:
            report.states.append(SyncState.STAR_MODEL_UPDATE)
            star_model = StarModelTask(
                self.client,
                min_donors=self.config.min_donors,
                max_facts=self.config.max_facts,
                today=self.today,
                skip_unknown_age=self.config.skip_unknown_age,
            )
            result = star_model.run(specimens, corrections)
            report.fact_stats = star_model.builder.stats
            report.facts_uploaded = result.uploaded
            report.warnings.extend(issue.message for issue in result.issues)
        else:
            report.skipped.append(SyncState.STAR_MODEL_UPDATE)

        report.states.append(SyncState.COLLECTION_UPDATE)
        collections = CollectionUpdateTask(self.client, today=self.today).run(specimens, corrections)
        report.collections_updated = collections.updated
        report.merge_missing = collections.missing
        report.warnings.extend(
            f"Collection {collection_id} not found in the Directory" for collection_id in collections.missing
        )

        if self.config.import_biobanks or self.config.import_collections:
            report.states.append(SyncState.BIOBANK_UPDATE)
            imported = ImportTask(self.client, self.store).run(
                biobanks=self.config.import_biobanks,
                collections=self.config.import_collections,
                collection_ids=list(specimens),
            )
            report.entities_written = imported.entities_written
        else:
            report.skipped.append(SyncState.BIOBANK_UPDATE)

        report.states.append(SyncState.DONE)

    def _correct_diagnoses(self, specimens: SpecimensByCollection, report: SyncRunReport) -> CorrectionMap:
        corrector = DiagnosisCodeCorrector(self.client, validity_cache=self.validity_cache)
        corrections = corrector.correct(distinct_diagnoses(specimens))
        report.corrections = corrector.report
        return corrections
