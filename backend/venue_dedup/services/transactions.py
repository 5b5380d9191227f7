"""Transaction boundary helper for review and merge writes."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from venue_dedup.dedup.errors import DedupError, MergeIntegrityError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(db: Session, operation: str) -> Iterator[Session]:
    """Commit everything written inside the block, or roll all of it back.

    Storage constraint violations are re-raised as ``MergeIntegrityError``.
    """

    try:
        yield db
        db.commit()
    except DedupError as exc:
        db.rollback()
        logger.info("dedup.rollback operation=%s reason=%s error=%s", operation, type(exc).__name__, exc)
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.error("dedup.integrity_rollback operation=%s error=%s", operation, exc.orig)
        raise MergeIntegrityError(f"{operation} violated a storage constraint: {exc.orig}") from exc
    except Exception:
        db.rollback()
        logger.exception("dedup.unexpected_rollback operation=%s", operation)
        raise
