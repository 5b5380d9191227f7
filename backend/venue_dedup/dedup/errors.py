"""Error taxonomy for duplicate review and merge operations."""

from __future__ import annotations


class DedupError(Exception):
    """Base class for duplicate detection and merge failures."""


class NotFoundError(DedupError):
    """A referenced venue or candidate no longer exists (already resolved)."""


class ConflictError(DedupError):
    """A candidate or venue was already reviewed by another session."""


class InvalidArgumentError(DedupError):
    """Malformed identifiers or a field override outside the allow-list."""


class MergeIntegrityError(DedupError):
    """A storage constraint failed mid-merge; the transaction was rolled back."""


class UnscorablePairError(DedupError):
    """A venue pair lacks the data needed to compute a similarity score."""
