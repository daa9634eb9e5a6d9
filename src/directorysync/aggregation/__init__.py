"""Aggregation of clinical rows into Directory summaries and fact tables."""

from .age_ranges import AGE_RANGE_LABELS, classify_age_range, parse_age
from .rows import explode_specimens
from .star_model import FactTableStats, StarModelFactTableBuilder
from .summary import CollectionSummaryAggregator

__all__ = [
    "AGE_RANGE_LABELS",
    "CollectionSummaryAggregator",
    "FactTableStats",
    "StarModelFactTableBuilder",
    "classify_age_range",
    "explode_specimens",
    "parse_age",
]
