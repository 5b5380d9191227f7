"""Deterministic similarity scoring for venue pairs."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum

from venue_dedup.dedup.errors import UnscorablePairError
from venue_dedup.dedup.geo import haversine_km
from venue_dedup.dedup.snapshot import VenueSnapshot

NAME_WEIGHT = 0.7
LOCATION_WEIGHT = 0.3
POSTCODE_WEIGHT = 0.7
PROXIMITY_WEIGHT = 0.3
SIMILAR_NAME_THRESHOLD = 0.85
GEOGRAPHIC_PROXIMITY_THRESHOLD = 0.8
SIMILAR_ADDRESS_THRESHOLD = 0.85
FULL_PROXIMITY_KM = 0.1
ZERO_PROXIMITY_KM = 1.0
HIGH_CONFIDENCE_MIN = 0.90
MEDIUM_CONFIDENCE_MIN = 0.75
_SCORE_PRECISION = 4

_NON_ALNUM_RE = re.compile(r"[^\w\s]")
_MULTISPACE_RE = re.compile(r"\s+")
_STREET_ABBREVIATIONS = (
    (re.compile(r"\bstreet\b"), "st"),
    (re.compile(r"\broad\b"), "rd"),
    (re.compile(r"\bavenue\b"), "ave"),
    (re.compile(r"\blane\b"), "ln"),
    (re.compile(r"\bplace\b"), "pl"),
)


class ConfidenceBand(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True, slots=True)
class PairScore:
    """Sub-scores, combined confidence and explanation tags for one pair."""

    name_similarity: float
    location_similarity: float
    confidence_score: float
    match_criteria: list[str] = field(default_factory=list)

    @property
    def band(self) -> ConfidenceBand:
        return confidence_band(self.confidence_score)


def normalize_venue_name(value: str | None) -> str:
    """Lower-case, strip punctuation and collapse whitespace."""

    if not value:
        return ""
    cleaned = _NON_ALNUM_RE.sub(" ", value.strip().lower())
    return _MULTISPACE_RE.sub(" ", cleaned).strip()


def normalize_postcode(value: str | None) -> str:
    if not value:
        return ""
    return _MULTISPACE_RE.sub("", value).upper()


def normalize_address(value: str | None) -> str:
    """Lower-case, abbreviate common street suffixes, strip punctuation."""

    if not value:
        return ""
    cleaned = value.strip().lower()
    for pattern, abbreviation in _STREET_ABBREVIATIONS:
        cleaned = pattern.sub(abbreviation, cleaned)
    cleaned = _NON_ALNUM_RE.sub(" ", cleaned)
    return _MULTISPACE_RE.sub(" ", cleaned).strip()


def token_set_similarity(left: str, right: str) -> float:
    """Return token overlap similarity in [0, 1]."""

    left_tokens = set(normalize_venue_name(left).split())
    right_tokens = set(normalize_venue_name(right).split())
    if not left_tokens or not right_tokens:
        return 0.0
    union = len(left_tokens | right_tokens)
    return len(left_tokens & right_tokens) / union if union else 0.0


def name_similarity(left: str | None, right: str | None) -> float:
    """Composite deterministic, symmetric name similarity."""

    norm_left = normalize_venue_name(left)
    norm_right = normalize_venue_name(right)
    if not norm_left or not norm_right:
        return 0.0
    if norm_left == norm_right:
        return 1.0
    # SequenceMatcher is order-sensitive; always compare in sorted order.
    first, second = sorted((norm_left, norm_right))
    sequence = SequenceMatcher(a=first, b=second, autojunk=False).ratio()
    token = token_set_similarity(first, second)
    return round(max(sequence, token), _SCORE_PRECISION)


def proximity_similarity(venue1: VenueSnapshot, venue2: VenueSnapshot) -> float | None:
    """Distance decay in [0, 1], or None when either venue lacks coordinates."""

    if not (venue1.has_coordinates and venue2.has_coordinates):
        return None
    distance_km = haversine_km(venue1.latitude, venue1.longitude, venue2.latitude, venue2.longitude)
    if distance_km <= FULL_PROXIMITY_KM:
        return 1.0
    if distance_km >= ZERO_PROXIMITY_KM:
        return 0.0
    return 1.0 - (distance_km - FULL_PROXIMITY_KM) / (ZERO_PROXIMITY_KM - FULL_PROXIMITY_KM)


def address_similarity(venue1: VenueSnapshot, venue2: VenueSnapshot) -> float:
    """SequenceMatcher ratio of the normalized addresses, 0.0 when either is missing."""

    address1 = normalize_address(venue1.address)
    address2 = normalize_address(venue2.address)
    if not address1 or not address2:
        return 0.0
    if address1 == address2:
        return 1.0
    first, second = sorted((address1, address2))
    return round(SequenceMatcher(a=first, b=second, autojunk=False).ratio(), _SCORE_PRECISION)


def same_city(venue1: VenueSnapshot, venue2: VenueSnapshot) -> bool:
    return venue1.city_id is not None and venue1.city_id == venue2.city_id


def same_postcode(venue1: VenueSnapshot, venue2: VenueSnapshot) -> bool:
    postcode1 = normalize_postcode(venue1.postcode)
    return bool(postcode1) and postcode1 == normalize_postcode(venue2.postcode)


def location_similarity(venue1: VenueSnapshot, venue2: VenueSnapshot) -> float:
    """Postcode agreement weighted heavily, refined by distance or city agreement.

    Without a postcode on both sides, address agreement stands in for the
    postcode and the higher of address and proximity wins.
    """

    proximity = proximity_similarity(venue1, venue2)
    if proximity is None:
        proximity = 1.0 if same_city(venue1, venue2) else 0.0
    if normalize_postcode(venue1.postcode) and normalize_postcode(venue2.postcode):
        postcode_score = 1.0 if same_postcode(venue1, venue2) else 0.0
        return round(POSTCODE_WEIGHT * postcode_score + PROXIMITY_WEIGHT * proximity, _SCORE_PRECISION)
    return round(max(proximity, address_similarity(venue1, venue2)), _SCORE_PRECISION)


def match_criteria(venue1: VenueSnapshot, venue2: VenueSnapshot, *, name_score: float | None = None) -> list[str]:
    """Tags describing which sub-conditions fired. Display only."""

    if name_score is None:
        name_score = name_similarity(venue1.name, venue2.name)
    criteria: list[str] = []
    if normalize_venue_name(venue1.name) and normalize_venue_name(venue1.name) == normalize_venue_name(venue2.name):
        criteria.append("same_name")
    elif name_score >= SIMILAR_NAME_THRESHOLD:
        criteria.append("similar_name")
    if same_postcode(venue1, venue2):
        criteria.append("same_postcode")
    if address_similarity(venue1, venue2) >= SIMILAR_ADDRESS_THRESHOLD:
        criteria.append("similar_address")
    if same_city(venue1, venue2):
        criteria.append("same_city")
    proximity = proximity_similarity(venue1, venue2)
    if proximity is not None and proximity >= GEOGRAPHIC_PROXIMITY_THRESHOLD:
        criteria.append("geographic_proximity")
    if _same_place_id(venue1, venue2):
        criteria.append("same_place_id")
    return criteria


def score_pair(venue1: VenueSnapshot, venue2: VenueSnapshot) -> PairScore:
    """Score a venue pair.

    The result depends only on the two snapshots and is identical for
    ``score_pair(a, b)`` and ``score_pair(b, a)``.
    """

    if not normalize_venue_name(venue1.name) or not normalize_venue_name(venue2.name):
        raise UnscorablePairError(f"Venue {venue1.id} or {venue2.id} has no usable name.")

    name_score = name_similarity(venue1.name, venue2.name)
    location_score = location_similarity(venue1, venue2)
    if _same_place_id(venue1, venue2):
        confidence = 1.0
    else:
        confidence = round(NAME_WEIGHT * name_score + LOCATION_WEIGHT * location_score, _SCORE_PRECISION)
    return PairScore(
        name_similarity=name_score,
        location_similarity=location_score,
        confidence_score=confidence,
        match_criteria=match_criteria(venue1, venue2, name_score=name_score),
    )


def confidence_band(score: float) -> ConfidenceBand:
    if score >= HIGH_CONFIDENCE_MIN:
        return ConfidenceBand.HIGH
    if score >= MEDIUM_CONFIDENCE_MIN:
        return ConfidenceBand.MEDIUM
    return ConfidenceBand.LOW


def _same_place_id(venue1: VenueSnapshot, venue2: VenueSnapshot) -> bool:
    place1 = (venue1.place_id or "").strip()
    return bool(place1) and place1 == (venue2.place_id or "").strip()
