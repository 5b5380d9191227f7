"""Canonical identity for unordered venue pairs."""

from __future__ import annotations

from dataclasses import dataclass

from venue_dedup.dedup.errors import InvalidArgumentError

_KEY_SEPARATOR = "-"


@dataclass(frozen=True, slots=True)
class PairKey:
    """Unordered venue pair stored as ``(low, high)``."""

    low: int
    high: int

    @classmethod
    def of(cls, venue_a_id: int, venue_b_id: int) -> "PairKey":
        if venue_a_id == venue_b_id:
            raise InvalidArgumentError(f"A venue cannot be paired with itself (id={venue_a_id}).")
        if venue_a_id < 1 or venue_b_id < 1:
            raise InvalidArgumentError(f"Venue ids must be positive, got {venue_a_id} and {venue_b_id}.")
        return cls(min(venue_a_id, venue_b_id), max(venue_a_id, venue_b_id))

    @classmethod
    def parse(cls, raw: str) -> "PairKey":
        """Parse an opaque ``"<id>-<id>"`` key as handed out to callers."""

        parts = str(raw).strip().split(_KEY_SEPARATOR)
        if len(parts) != 2:
            raise InvalidArgumentError(f"Malformed pair key: {raw!r}")
        try:
            first, second = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise InvalidArgumentError(f"Malformed pair key: {raw!r}") from exc
        return cls.of(first, second)

    @property
    def key(self) -> str:
        return f"{self.low}{_KEY_SEPARATOR}{self.high}"

    def __str__(self) -> str:
        return self.key
