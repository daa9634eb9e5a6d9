"""Directory client that writes collections and facts to CSV files."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from directorysync.directory.base import FACT_BLOCK_SIZE, RegistryClient
from directorysync.directory.records import CollectionGet, CollectionPut
from directorysync.models import BbmriEricId

logger = logging.getLogger(__name__)

COLLECTIONS_FILE = "DirectoryCollections.csv"
FACTS_FILE = "DirectoryFactTables.csv"


def _cell(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True)
    return value


class FileOutputRegistryClient(RegistryClient):
    """Offline Directory stand-in for inspecting what a sync would send.

    Every diagnosis code is accepted, and no collection is known to the
    registry, so merges are no-ops. Collections and facts accumulate across
    calls and their CSV files are rewritten after each write.
    """

    name = "file"

    def __init__(self, output_directory: str | Path, *, mock: bool = False) -> None:
        super().__init__(mock=mock)
        self.output_directory = Path(output_directory)
        self._collection_rows: dict[str, dict[str, Any]] = {}
        self._fact_rows: list[dict[str, Any]] = []

    @property
    def collections_path(self) -> Path:
        return self.output_directory / COLLECTIONS_FILE

    @property
    def facts_path(self) -> Path:
        return self.output_directory / FACTS_FILE

    def login(self) -> None:
        self.output_directory.mkdir(parents=True, exist_ok=True)

    def is_valid_code(self, code: str) -> bool:
        return True

    def get_collections(self, country_code: str | None, collection_ids: Sequence[str]) -> CollectionGet:
        return CollectionGet(mock=self.mock)

    def put_collections(self, country_code: str | None, put: CollectionPut) -> None:
        if self.mock:
            return
        for entity in put.prepared_entities():
            self._collection_rows[str(entity["id"])] = {key: _cell(value) for key, value in entity.items()}
        self._write(pd.DataFrame(list(self._collection_rows.values())), self.collections_path)

    def put_facts(self, country_code: str | None, facts_block: Sequence[Mapping[str, Any]]) -> None:
        if len(facts_block) > FACT_BLOCK_SIZE:
            raise ValueError(f"Fact block larger than {FACT_BLOCK_SIZE}: {len(facts_block)}")
        self._fact_rows.extend(dict(row) for row in facts_block)
        self._write(pd.DataFrame(self._fact_rows), self.facts_path)

    def delete_facts(self, country_code: str | None, fact_ids: Sequence[str]) -> None:
        doomed = set(fact_ids)
        self._fact_rows = [row for row in self._fact_rows if row.get("id") not in doomed]

    def get_fact_ids_by_collection(self, country_code: str | None, collection_id: str) -> list[str]:
        return [str(row["id"]) for row in self._fact_rows if row.get("collection") == collection_id]

    def fetch_biobank(self, biobank_id: BbmriEricId) -> dict[str, Any] | None:
        return {"id": str(biobank_id)}

    def _write(self, frame: pd.DataFrame, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(path, index=False)
        logger.info("Wrote %d rows to %s", len(frame), path)
