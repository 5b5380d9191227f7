"""Pure merge policy: primary selection, field directions and image union."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from venue_dedup.dedup.errors import InvalidArgumentError
from venue_dedup.dedup.snapshot import VenueSnapshot

_MAX_EVENT_SCORE = 10
_COMPLETENESS_FIELDS = ("name", "address", "postcode", "phone", "website", "place_id", "facebook", "instagram")
_IMAGE_IDENTITY_KEYS = ("reference", "url", "local_path")


class OverridableField(str, Enum):
    """Fields a reviewer may flip to the non-default side during a merge."""

    WEBSITE = "website"
    PHONE = "phone"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    SLUG = "slug"


class MetadataStrategy(str, Enum):
    PREFER_PRIMARY = "prefer_primary"
    PREFER_SECONDARY = "prefer_secondary"
    COMBINE = "combine"


class EventStrategy(str, Enum):
    MIGRATE_ALL = "migrate_all"


class FieldSide(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


METADATA_FIELDS = ("name", "address", "postcode")

# The secondary record is usually the more recently scraped one, so its website wins by default.
DEFAULT_FIELD_SIDES: dict[OverridableField, FieldSide] = {
    OverridableField.SLUG: FieldSide.PRIMARY,
    OverridableField.WEBSITE: FieldSide.SECONDARY,
    OverridableField.PHONE: FieldSide.PRIMARY,
    OverridableField.FACEBOOK: FieldSide.PRIMARY,
    OverridableField.INSTAGRAM: FieldSide.PRIMARY,
}


@dataclass(frozen=True, slots=True)
class FieldChange:
    field: str
    previous: Any
    value: Any
    source: FieldSide


def parse_field_overrides(raw: Iterable[str | OverridableField]) -> list[OverridableField]:
    """Turn caller-supplied names into the closed override enum.

    Raises ``InvalidArgumentError`` for any name outside the allow-list.
    """

    parsed: list[OverridableField] = []
    for item in raw:
        if isinstance(item, OverridableField):
            field = item
        else:
            try:
                field = OverridableField(str(item).strip().lower())
            except ValueError as exc:
                allowed = ", ".join(member.value for member in OverridableField)
                raise InvalidArgumentError(
                    f"Field {item!r} cannot be overridden; allowed fields: {allowed}."
                ) from exc
        if field not in parsed:
            parsed.append(field)
    return parsed


def completeness_score(venue: VenueSnapshot) -> int:
    return sum(1 for name in _COMPLETENESS_FIELDS if _has_value(getattr(venue, name)))


def choose_primary(venue_a: VenueSnapshot, venue_b: VenueSnapshot) -> tuple[VenueSnapshot, VenueSnapshot]:
    """Return ``(primary, secondary)``.

    Prefers a venue with a slug, then the more complete record (filled fields
    plus event count, capped), then the older record, then the lower id.
    """

    def rank(venue: VenueSnapshot) -> tuple[int, int, float, int]:
        return (
            1 if _has_value(venue.slug) else 0,
            completeness_score(venue) + min(venue.event_count, _MAX_EVENT_SCORE),
            -_timestamp(venue.created_at),
            -venue.id,
        )

    if rank(venue_a) >= rank(venue_b):
        return venue_a, venue_b
    return venue_b, venue_a


def resolve_field_changes(
    primary: VenueSnapshot,
    secondary: VenueSnapshot,
    *,
    metadata_strategy: MetadataStrategy,
    field_overrides: Sequence[OverridableField],
) -> list[FieldChange]:
    """Compute the attribute updates to apply to the primary venue."""

    changes: list[FieldChange] = []
    for name in METADATA_FIELDS:
        primary_value = getattr(primary, name)
        secondary_value = getattr(secondary, name)
        if metadata_strategy is MetadataStrategy.PREFER_PRIMARY:
            chosen, side = _coalesce(primary_value, secondary_value, FieldSide.PRIMARY)
        elif metadata_strategy is MetadataStrategy.PREFER_SECONDARY:
            chosen, side = _coalesce(secondary_value, primary_value, FieldSide.SECONDARY)
        else:
            chosen, side = _longer_value(primary_value, secondary_value)
        if chosen != primary_value:
            changes.append(FieldChange(field=name, previous=primary_value, value=chosen, source=side))

    overrides = set(field_overrides)
    for field, default_side in DEFAULT_FIELD_SIDES.items():
        side = _flip(default_side) if field in overrides else default_side
        preferred, fallback = _sided_values(primary, secondary, field.value, side)
        chosen, source = _coalesce(preferred, fallback, side)
        primary_value = getattr(primary, field.value)
        if chosen != primary_value:
            changes.append(FieldChange(field=field.value, previous=primary_value, value=chosen, source=source))
    return changes


def image_identity(image: dict[str, Any]) -> str | None:
    for key in _IMAGE_IDENTITY_KEYS:
        value = image.get(key)
        if isinstance(value, str) and value.strip():
            return f"{key}:{value.strip()}"
    return None


def combine_images(
    primary_images: Sequence[dict[str, Any]],
    secondary_images: Sequence[dict[str, Any]],
) -> tuple[list[dict[str, Any]], int]:
    """Union two image lists, de-duplicated by stable identity.

    Returns the combined list and how many secondary images were added.
    Images without any identity are always kept.
    """

    combined: list[dict[str, Any]] = []
    seen: set[str] = set()
    for image in primary_images:
        identity = image_identity(image)
        if identity is not None:
            if identity in seen:
                continue
            seen.add(identity)
        combined.append(dict(image))

    added = 0
    for image in secondary_images:
        identity = image_identity(image)
        if identity is not None:
            if identity in seen:
                continue
            seen.add(identity)
        combined.append(dict(image))
        added += 1
    return combined, added


def metadata_conflicts(primary: VenueSnapshot, secondary: VenueSnapshot) -> list[dict[str, Any]]:
    """Fields where both venues carry different non-empty values."""

    conflicts: list[dict[str, Any]] = []
    for name in (*METADATA_FIELDS, *(field.value for field in OverridableField)):
        primary_value = getattr(primary, name)
        secondary_value = getattr(secondary, name)
        if _has_value(primary_value) and _has_value(secondary_value) and primary_value != secondary_value:
            conflicts.append({"field": name, "primary": primary_value, "secondary": secondary_value})
    return conflicts


def _sided_values(
    primary: VenueSnapshot,
    secondary: VenueSnapshot,
    name: str,
    side: FieldSide,
) -> tuple[Any, Any]:
    if side is FieldSide.PRIMARY:
        return getattr(primary, name), getattr(secondary, name)
    return getattr(secondary, name), getattr(primary, name)


def _coalesce(preferred: Any, fallback: Any, side: FieldSide) -> tuple[Any, FieldSide]:
    if _has_value(preferred) or not _has_value(fallback):
        return preferred, side
    return fallback, _flip(side)


def _longer_value(primary_value: Any, secondary_value: Any) -> tuple[Any, FieldSide]:
    if not _has_value(primary_value):
        return _coalesce(secondary_value, primary_value, FieldSide.SECONDARY)
    if _has_value(secondary_value) and len(str(secondary_value).strip()) > len(str(primary_value).strip()):
        return secondary_value, FieldSide.SECONDARY
    return primary_value, FieldSide.PRIMARY


def _flip(side: FieldSide) -> FieldSide:
    return FieldSide.SECONDARY if side is FieldSide.PRIMARY else FieldSide.PRIMARY


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _timestamp(value: datetime | None) -> float:
    if value is None:
        return float("inf")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()
