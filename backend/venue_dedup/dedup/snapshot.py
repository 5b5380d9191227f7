"""Immutable venue views consumed by the pure scoring and policy helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from venue_dedup.models.venue import Venue


@dataclass(frozen=True, slots=True)
class VenueSnapshot:
    """Plain copy of the venue fields that scoring and merge policy read."""

    id: int
    name: str
    slug: str | None = None
    address: str | None = None
    postcode: str | None = None
    city_id: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    place_id: str | None = None
    phone: str | None = None
    website: str | None = None
    facebook: str | None = None
    instagram: str | None = None
    created_at: datetime | None = None
    event_count: int = 0
    images: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, venue: Venue, *, event_count: int = 0) -> "VenueSnapshot":
        return cls(
            id=venue.id,
            name=venue.name,
            slug=venue.slug,
            address=venue.address,
            postcode=venue.postcode,
            city_id=venue.city_id,
            latitude=venue.latitude,
            longitude=venue.longitude,
            place_id=venue.place_id,
            phone=venue.phone,
            website=venue.website,
            facebook=venue.facebook,
            instagram=venue.instagram,
            created_at=venue.created_at,
            event_count=event_count,
            images=tuple(dict(image) for image in (venue.images_json or []) if isinstance(image, dict)),
        )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
