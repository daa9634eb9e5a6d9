"""Merge registry-owned collection attributes into locally built records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from directorysync.directory.records import REGISTRY_OWNED_FIELDS, CollectionGet, CollectionPut

logger = logging.getLogger(__name__)


@dataclass
class MergeOutcome:
    """Which collections received registry attributes."""

    success: bool
    merged: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


def merge(get: CollectionGet, put: CollectionPut) -> MergeOutcome:
    """Copy registry-owned fields from ``get`` into ``put`` in place.

    Locally computed attributes in ``put`` are never touched. A collection the
    registry does not know is skipped; the merge succeeds if at least one
    collection merged, or if either side is empty.
    """

    if get.mock:
        return MergeOutcome(success=True)
    if len(get) == 0 or not put.entities:
        logger.warning("Nothing to merge (%d registry items, %d local entities)", len(get), len(put.entities))
        return MergeOutcome(success=True)

    outcome = MergeOutcome(success=False)
    for collection_id in put.collection_ids:
        registry_fields = get.registry_fields(collection_id)
        if registry_fields is None:
            logger.warning("Collection %s not found in the Directory, not merged", collection_id)
            outcome.missing.append(collection_id)
            continue

        for name in REGISTRY_OWNED_FIELDS:
            put.set_field(collection_id, name, registry_fields.get(name))
        outcome.merged.append(collection_id)

    outcome.success = bool(outcome.merged)
    if not outcome.success:
        logger.warning("No collection could be merged with Directory data")
    return outcome
