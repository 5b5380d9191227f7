"""Schemas for duplicate review, scanning and merge endpoints."""

from __future__ import annotations

from datetime import datetime, time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from venue_dedup.dedup.policy import EventStrategy, MetadataStrategy

ConfidenceFilter = Literal["all", "high_confidence", "medium_confidence", "low_confidence"]
CandidateSort = Literal["confidence", "name", "name_similarity", "location_similarity"]


class ScanOptions(BaseModel):
    """Options for one candidate scan."""

    clear_existing: bool = False
    min_confidence: float = Field(default=0.70, ge=0.0, le=1.0)
    batch_size: int = Field(default=100, ge=1, le=5000)
    resume_after_id: int | None = Field(default=None, ge=0)


class ScanStats(BaseModel):
    """Counters reported by a finished scan.

    ``stale_removed`` counts pending rows dropped because a re-score fell
    below ``min_confidence``.
    """

    processed: int = 0
    duplicates_found: int = 0
    duplicates_stored: int = 0
    skipped_reviewed: int = 0
    stale_removed: int = 0
    unscorable: int = 0
    last_venue_id: int | None = None


class ScanRunRead(BaseModel):
    """Serialized background scan run."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    options_json: dict[str, Any]
    stats_json: dict[str, Any]
    error_message: str | None
    started_at: datetime | None
    finished_at: datetime | None
    created_at: datetime


class CandidateSummary(BaseModel):
    """One row of the duplicate review queue."""

    id: int | None
    pair_key: str
    venue1_id: int
    venue1_name: str
    venue1_postcode: str | None
    venue1_city_id: int | None
    venue2_id: int
    venue2_name: str
    venue2_postcode: str | None
    venue2_city_id: int | None
    confidence_score: float | None
    name_similarity: float | None
    location_similarity: float | None
    confidence_band: str | None
    match_criteria: list[str]


class CandidateListResponse(BaseModel):
    """Paginated review queue payload."""

    items: list[CandidateSummary]
    total: int
    page: int
    per_page: int


class CandidateRead(BaseModel):
    """Serialized registry candidate."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    venue1_id: int
    venue2_id: int
    confidence_score: float
    name_similarity: float
    location_similarity: float
    match_criteria: list[str]
    status: str
    reviewed_at: datetime | None
    reviewed_by: str | None
    created_at: datetime


class DuplicateStatistics(BaseModel):
    """Aggregate registry statistics."""

    total: int
    high_confidence: int
    medium_confidence: int
    low_confidence: int
    pending: int
    merged: int
    rejected: int
    avg_confidence: float | None
    avg_name_similarity: float | None
    avg_location_similarity: float | None


class EventSourceSummary(BaseModel):
    source_id: int
    source_name: str | None
    source_url: str | None
    last_seen_at: datetime | None


class EventSummary(BaseModel):
    id: int
    name: str
    day_of_week: int
    start_time: time | None
    sources: list[EventSourceSummary]


class VenueDetail(BaseModel):
    """Side-by-side venue data for the comparison view."""

    id: int
    name: str
    slug: str | None
    address: str | None
    postcode: str | None
    city_id: int | None
    city_name: str | None
    latitude: float | None
    longitude: float | None
    place_id: str | None
    phone: str | None
    website: str | None
    facebook: str | None
    instagram: str | None
    image_count: int
    created_at: datetime | None
    events: list[EventSummary]


class VenueComparison(BaseModel):
    """Comparison payload, or ``resolved`` when the pair no longer exists."""

    pair_key: str
    resolved: bool = False
    removed_candidates: int = 0
    venue1: VenueDetail | None = None
    venue2: VenueDetail | None = None
    name_similarity: float | None = None
    location_similarity: float | None = None
    confidence_score: float | None = None
    confidence_band: str | None = None
    match_criteria: list[str] = Field(default_factory=list)
    candidate: CandidateRead | None = None
    suggested_primary_id: int | None = None
    default_field_sides: dict[str, str] = Field(default_factory=dict)
    allowed_override_fields: list[str] = Field(default_factory=list)
    metadata_conflicts: list[dict[str, Any]] = Field(default_factory=list)


class MergeRequest(BaseModel):
    """Merge request body; ``auto_select_primary`` lets the engine order the two venues."""

    primary_id: int = Field(ge=1)
    secondary_id: int = Field(ge=1)
    auto_select_primary: bool = False
    performed_by: str | None = Field(default=None, min_length=1)
    metadata_strategy: MetadataStrategy = MetadataStrategy.COMBINE
    field_overrides: list[str] = Field(default_factory=list)
    event_strategy: EventStrategy = EventStrategy.MIGRATE_ALL
    notes: str | None = None

    @model_validator(mode="after")
    def validate_distinct_venues(self) -> "MergeRequest":
        if self.primary_id == self.secondary_id:
            raise ValueError("primary_id and secondary_id must differ.")
        return self


class MergeResultRead(BaseModel):
    """Outcome of a committed merge."""

    primary_venue_id: int
    secondary_venue_id: int
    candidate_id: int | None
    log_id: int
    events_migrated: int
    images_combined: int
    fields_overridden: list[str]
    field_changes: list[dict[str, Any]]


class MergePreviewRead(BaseModel):
    """Dry-run summary of a merge."""

    primary_venue_id: int
    secondary_venue_id: int
    events_to_migrate: int
    images_to_combine: int
    metadata_conflicts: list[dict[str, Any]]
    field_changes: list[dict[str, Any]]
    recommended_action: Literal["safe", "review_conflicts", "manual_review"]


class RejectRequest(BaseModel):
    """Reject a pair by venue ids."""

    venue1_id: int = Field(ge=1)
    venue2_id: int = Field(ge=1)
    reviewed_by: str | None = Field(default=None, min_length=1)
    notes: str | None = None


class RejectByIdRequest(BaseModel):
    reviewed_by: str | None = Field(default=None, min_length=1)
    notes: str | None = None


class RejectResultRead(BaseModel):
    candidate_id: int
    pair_key: str
    status: str


class BatchRequest(BaseModel):
    """Batch merge/reject body of opaque pair keys."""

    pairs: list[str] = Field(min_length=1)
    performed_by: str | None = Field(default=None, min_length=1)


class BatchResult(BaseModel):
    success_count: int


class MergeLogRead(BaseModel):
    """Serialized merge audit record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    action_type: str
    primary_venue_id: int
    secondary_venue_id: int
    performed_by: str
    notes: str | None
    metadata_json: dict[str, Any]
    created_at: datetime
