"""Venue duplicate scoring and merge policy package."""

from venue_dedup.dedup.errors import (
    ConflictError,
    DedupError,
    InvalidArgumentError,
    MergeIntegrityError,
    NotFoundError,
    UnscorablePairError,
)
from venue_dedup.dedup.pairs import PairKey
from venue_dedup.dedup.policy import (
    EventStrategy,
    MetadataStrategy,
    OverridableField,
    choose_primary,
    parse_field_overrides,
)
from venue_dedup.dedup.similarity import ConfidenceBand, PairScore, confidence_band, score_pair
from venue_dedup.dedup.snapshot import VenueSnapshot

__all__ = [
    "ConfidenceBand",
    "ConflictError",
    "DedupError",
    "EventStrategy",
    "InvalidArgumentError",
    "MergeIntegrityError",
    "MetadataStrategy",
    "NotFoundError",
    "OverridableField",
    "PairKey",
    "PairScore",
    "UnscorablePairError",
    "VenueSnapshot",
    "choose_primary",
    "confidence_band",
    "parse_field_overrides",
    "score_pair",
]
