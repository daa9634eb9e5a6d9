"""Core primitives for synchronizing a biobank's clinical store with the BBMRI-ERIC Directory.

This package provides the aggregation, diagnosis correction, Directory client
and clinical store building blocks, plus the orchestrator that runs them.
"""

from .aggregation import (
    AGE_RANGE_LABELS,
    CollectionSummaryAggregator,
    FactTableStats,
    StarModelFactTableBuilder,
    classify_age_range,
    explode_specimens,
)
from .config import ComponentSpec, RetryPolicy, SyncConfigLoader, SyncConfiguration
from .diagnosis import CodeValidator, CorrectionMap, CorrectionReport, DiagnosisCodeCorrector
from .directory import (
    CollectionGet,
    CollectionPut,
    DirectoryRestClient,
    FileOutputRegistryClient,
    InMemoryRegistryClient,
    MergeOutcome,
    RegistryClient,
    merge,
)
from .errors import ClinicalStoreError, ConfigurationError, DirectorySyncError, RegistryError
from .models import BbmriEricId, CollectionSummary, Fact, FactKey, InputRow, PatientRecord, SpecimenRecord
from .pipeline import SyncOrchestrator, SyncRunReport, SyncState
from .registry import (
    ComponentPluginSpec,
    ComponentRegistry,
    build_default_client_registry,
    build_default_store_registry,
    register_plugin_file,
)
from .sources import ClinicalStore, CsvClinicalStore, FhirStoreClient
from .updater import BIOBANK_UPDATERS, COLLECTION_UPDATERS, ChangeDetectingUpdater

__all__ = [
    "AGE_RANGE_LABELS",
    "BIOBANK_UPDATERS",
    "COLLECTION_UPDATERS",
    "BbmriEricId",
    "ChangeDetectingUpdater",
    "ClinicalStore",
    "ClinicalStoreError",
    "CodeValidator",
    "CollectionGet",
    "CollectionPut",
    "CollectionSummary",
    "CollectionSummaryAggregator",
    "ComponentPluginSpec",
    "ComponentRegistry",
    "ComponentSpec",
    "ConfigurationError",
    "CorrectionMap",
    "CorrectionReport",
    "CsvClinicalStore",
    "DiagnosisCodeCorrector",
    "DirectoryRestClient",
    "DirectorySyncError",
    "Fact",
    "FactKey",
    "FactTableStats",
    "FhirStoreClient",
    "FileOutputRegistryClient",
    "InMemoryRegistryClient",
    "InputRow",
    "MergeOutcome",
    "PatientRecord",
    "RegistryClient",
    "RegistryError",
    "RetryPolicy",
    "SpecimenRecord",
    "StarModelFactTableBuilder",
    "SyncConfigLoader",
    "SyncConfiguration",
    "SyncOrchestrator",
    "SyncRunReport",
    "SyncState",
    "build_default_client_registry",
    "build_default_store_registry",
    "classify_age_range",
    "explode_specimens",
    "merge",
    "register_plugin_file",
]
