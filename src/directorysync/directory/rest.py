"""Directory client for the MOLGENIS REST API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

import requests

from directorysync.directory.base import FACT_BLOCK_SIZE, RegistryClient
from directorysync.directory.records import CollectionGet, CollectionPut
from directorysync.errors import RegistryError
from directorysync.models import BbmriEricId

logger = logging.getLogger(__name__)

TOKEN_HEADER = "x-molgenis-token"
LOGIN_PATH = "/api/v1/login"
DISEASE_TYPE_PATH = "/api/v2/eu_bbmri_eric_disease_types"
TABLE_PATH_PREFIX = "/api/v2/eu_bbmri_eric_"

T = TypeVar("T")


class DirectoryRestClient(RegistryClient):
    """Talk to a Directory through its ``/api/v2`` REST endpoints.

    Tables may be national (``eu_bbmri_eric_DE_collections``) or shared
    (``eu_bbmri_eric_collections``); calls against a national table that fail
    are retried once against the shared one.
    """

    name = "rest"

    def __init__(
        self,
        base_url: str,
        username: str = "",
        password: str = "",
        *,
        mock: bool = False,
        session: requests.Session | None = None,
        timeout: float = 60.0,
        fact_page_size: int = 10000,
    ) -> None:
        super().__init__(mock=mock)
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.session = session or requests.Session()
        self.timeout = timeout
        self.fact_page_size = fact_page_size

    def login(self) -> None:
        if self.mock:
            logger.info("Mock Directory, skipping login")
            return

        payload = self._request_json(
            "POST",
            self.base_url + LOGIN_PATH,
            json={"username": self.username, "password": self.password},
        )
        token = payload.get("token") if isinstance(payload, dict) else None
        if not token:
            raise RegistryError("Directory login returned no token")
        self.session.headers[TOKEN_HEADER] = token
        logger.info("Logged in to Directory at %s", self.base_url)

    def is_valid_code(self, code: str) -> bool:
        if self.mock:
            return True
        payload = self._request_json(
            "GET",
            self.base_url + DISEASE_TYPE_PATH,
            params={"q": f"id=='{code}'"},
        )
        return int(payload.get("total", 0)) > 0

    def get_collections(self, country_code: str | None, collection_ids: Sequence[str]) -> CollectionGet:
        if self.mock:
            return CollectionGet(mock=True)

        result = CollectionGet()
        for collection_id in collection_ids:
            payload = self._with_country_fallback(
                country_code,
                "collections",
                lambda url, cid=collection_id: self._request_json(
                    "GET", url, params={"q": f'id=="{cid}"'}
                ),
            )
            items = payload.get("items") or []
            if not items:
                logger.warning("Collection %s does not exist in the Directory", collection_id)
                continue
            result.items.append(items[0])
        return result

    def put_collections(self, country_code: str | None, put: CollectionPut) -> None:
        if self.mock:
            logger.info("Mock Directory, skipping update of %d collections", len(put.entities))
            return
        body = put.to_payload()
        self._with_country_fallback(
            country_code,
            "collections",
            lambda url: self._request("PUT", url, json=body),
        )

    def put_facts(self, country_code: str | None, facts_block: Sequence[Mapping[str, Any]]) -> None:
        if len(facts_block) > FACT_BLOCK_SIZE:
            raise ValueError(f"Fact block larger than {FACT_BLOCK_SIZE}: {len(facts_block)}")
        if self.mock or not facts_block:
            return
        body = {"entities": [dict(row) for row in facts_block]}
        self._with_country_fallback(
            country_code,
            "facts",
            lambda url: self._request("POST", url, json=body),
        )

    def delete_facts(self, country_code: str | None, fact_ids: Sequence[str]) -> None:
        if self.mock or not fact_ids:
            return
        body = {"entityIds": list(fact_ids)}
        self._with_country_fallback(
            country_code,
            "facts",
            lambda url: self._request("DELETE", url, json=body),
        )

    def get_fact_ids_by_collection(self, country_code: str | None, collection_id: str) -> list[str]:
        if self.mock:
            return []
        payload = self._with_country_fallback(
            country_code,
            "facts",
            lambda url: self._request_json(
                "GET",
                url,
                params={
                    "q": f'collection=="{collection_id}"',
                    "attrs": "id",
                    "num": self.fact_page_size,
                },
            ),
        )
        if "items" not in payload:
            raise RegistryError(f"Fact listing for {collection_id} has no items")
        return [str(item["id"]) for item in payload["items"] if item.get("id")]

    def fetch_biobank(self, biobank_id: BbmriEricId) -> dict[str, Any] | None:
        if self.mock:
            return {"id": str(biobank_id)}
        try:
            return self._with_country_fallback(
                biobank_id.country_code,
                "biobanks",
                lambda url: self._request_json("GET", f"{url}/{biobank_id}"),
            )
        except RegistryError as exc:
            logger.warning("No biobank %s in the Directory: %s", biobank_id, exc)
            return None

    def table_url(self, country_code: str | None, table: str) -> str:
        national = f"{country_code}_" if country_code else ""
        return f"{self.base_url}{TABLE_PATH_PREFIX}{national}{table}"

    def _with_country_fallback(
        self,
        country_code: str | None,
        table: str,
        call: Callable[[str], T],
    ) -> T:
        try:
            return call(self.table_url(country_code, table))
        except RegistryError as exc:
            if not country_code:
                raise
            logger.info("Call to %s table for %s failed (%s), retrying shared table", table, country_code, exc)
            return call(self.table_url(None, table))

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise RegistryError(f"{method} {url} failed: {exc}") from exc
        return response

    def _request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise RegistryError(f"{method} {url} returned invalid JSON") from exc
