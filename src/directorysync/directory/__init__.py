"""Directory records, merge logic and client implementations."""

from .base import FACT_BLOCK_SIZE, RegistryClient, country_code_of
from .file_output import FileOutputRegistryClient
from .memory import InMemoryRegistryClient
from .merge import MergeOutcome, merge
from .records import REGISTRY_OWNED_FIELDS, CollectionGet, CollectionPut
from .rest import DirectoryRestClient

__all__ = [
    "FACT_BLOCK_SIZE",
    "REGISTRY_OWNED_FIELDS",
    "CollectionGet",
    "CollectionPut",
    "DirectoryRestClient",
    "FileOutputRegistryClient",
    "InMemoryRegistryClient",
    "MergeOutcome",
    "RegistryClient",
    "country_code_of",
    "merge",
]
