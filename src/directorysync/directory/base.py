"""Common interface for Directory clients."""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from directorysync.diagnosis import CodeValidator
from directorysync.directory.records import CollectionGet, CollectionPut
from directorysync.errors import RegistryError
from directorysync.models import BbmriEricId, Fact

logger = logging.getLogger(__name__)

FACT_BLOCK_SIZE = 1000


def country_code_of(collection_id: str) -> str | None:
    parsed = BbmriEricId.parse(collection_id)
    return parsed.country_code if parsed is not None else None


class RegistryClient(CodeValidator):
    """Transport-independent Directory client.

    Implementations raise :class:`RegistryError` when a call fails. In mock
    mode every write is accepted without contacting the Directory.
    """

    name: str

    def __init__(self, *, mock: bool = False) -> None:
        self.mock = mock

    @abstractmethod
    def login(self) -> None:
        """Authenticate against the Directory."""

    @abstractmethod
    def get_collections(self, country_code: str | None, collection_ids: Sequence[str]) -> CollectionGet:
        """Fetch the stored records of ``collection_ids``."""

    @abstractmethod
    def put_collections(self, country_code: str | None, put: CollectionPut) -> None:
        """Write collection entities."""

    @abstractmethod
    def put_facts(self, country_code: str | None, facts_block: Sequence[Mapping[str, Any]]) -> None:
        """Insert at most ``FACT_BLOCK_SIZE`` fact rows."""

    @abstractmethod
    def delete_facts(self, country_code: str | None, fact_ids: Sequence[str]) -> None:
        """Delete facts by id."""

    @abstractmethod
    def get_fact_ids_by_collection(self, country_code: str | None, collection_id: str) -> list[str]:
        """Return one page of fact ids belonging to a collection."""

    @abstractmethod
    def fetch_biobank(self, biobank_id: BbmriEricId) -> dict[str, Any] | None:
        """Return the Directory record of a biobank, or ``None`` if unknown."""

    def update_star_model(self, facts_by_collection: Mapping[str, Sequence[Fact]]) -> int:
        """Replace each collection's fact table and return the number of facts sent."""

        if self.mock:
            logger.info("Mock Directory, skipping star model upload")
            return 0

        uploaded = 0
        for collection_id, facts in facts_by_collection.items():
            country_code = country_code_of(collection_id)
            self.delete_all_facts(country_code, collection_id)

            rows = [fact.to_row() for fact in facts]
            for start in range(0, len(rows), FACT_BLOCK_SIZE):
                block = rows[start:start + FACT_BLOCK_SIZE]
                self.put_facts(country_code, block)
                uploaded += len(block)
            logger.info("Uploaded %d facts for collection %s", len(rows), collection_id)
        return uploaded

    def delete_all_facts(self, country_code: str | None, collection_id: str) -> int:
        """Drain fact-id pages until one comes back empty, deleting as we go."""

        deleted = 0
        previous: list[str] | None = None
        while True:
            fact_ids = self.get_fact_ids_by_collection(country_code, collection_id)
            if not fact_ids:
                return deleted
            if fact_ids == previous:
                raise RegistryError(
                    f"Facts of collection {collection_id} are not being deleted"
                )
            self.delete_facts(country_code, fact_ids)
            deleted += len(fact_ids)
            previous = fact_ids
