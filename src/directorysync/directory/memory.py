"""Directory client backed by plain dictionaries."""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from directorysync.directory.base import FACT_BLOCK_SIZE, RegistryClient
from directorysync.directory.records import CollectionGet, CollectionPut
from directorysync.models import BbmriEricId


class InMemoryRegistryClient(RegistryClient):
    """Keeps collections, facts and biobanks in memory.

    ``valid_codes`` of ``None`` accepts every diagnosis code. Facts are listed
    in pages of ``fact_page_size`` so the drain-and-delete loop is exercised.
    """

    name = "memory"

    def __init__(
        self,
        *,
        collections: Iterable[Mapping[str, Any]] | None = None,
        biobanks: Iterable[Mapping[str, Any]] | None = None,
        valid_codes: Iterable[str] | None = None,
        fact_page_size: int = 100,
        mock: bool = False,
    ) -> None:
        super().__init__(mock=mock)
        self.collections: dict[str, dict[str, Any]] = {
            str(item["id"]): dict(item) for item in collections or []
        }
        self.biobanks: dict[str, dict[str, Any]] = {
            str(item["id"]): dict(item) for item in biobanks or []
        }
        self.valid_codes = set(valid_codes) if valid_codes is not None else None
        self.fact_page_size = fact_page_size
        self.facts: dict[str, dict[str, Any]] = {}
        self.written_entities: list[dict[str, Any]] = []
        self.logged_in = False
        self.validity_checks: list[str] = []
        self.fact_blocks: list[int] = []

    def login(self) -> None:
        self.logged_in = True

    def is_valid_code(self, code: str) -> bool:
        self.validity_checks.append(code)
        return self.valid_codes is None or code in self.valid_codes

    def get_collections(self, country_code: str | None, collection_ids: Sequence[str]) -> CollectionGet:
        if self.mock:
            return CollectionGet(mock=True)
        items = [
            copy.deepcopy(self.collections[collection_id])
            for collection_id in collection_ids
            if collection_id in self.collections
        ]
        return CollectionGet(items=items)

    def put_collections(self, country_code: str | None, put: CollectionPut) -> None:
        if self.mock:
            return
        self.written_entities.extend(put.prepared_entities())

    def put_facts(self, country_code: str | None, facts_block: Sequence[Mapping[str, Any]]) -> None:
        if len(facts_block) > FACT_BLOCK_SIZE:
            raise ValueError(f"Fact block larger than {FACT_BLOCK_SIZE}: {len(facts_block)}")
        self.fact_blocks.append(len(facts_block))
        for row in facts_block:
            self.facts[str(row["id"])] = dict(row)

    def delete_facts(self, country_code: str | None, fact_ids: Sequence[str]) -> None:
        for fact_id in fact_ids:
            self.facts.pop(fact_id, None)

    def get_fact_ids_by_collection(self, country_code: str | None, collection_id: str) -> list[str]:
        ids = [fact_id for fact_id, row in self.facts.items() if row.get("collection") == collection_id]
        return ids[: self.fact_page_size]

    def fetch_biobank(self, biobank_id: BbmriEricId) -> dict[str, Any] | None:
        record = self.biobanks.get(str(biobank_id))
        return copy.deepcopy(record) if record is not None else None
