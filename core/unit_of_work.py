# Unit of Work for Dexter Settlement Engine
# Runs one command in one database transaction, retrying optimistic-lock conflicts

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config.app_config import MAX_CONFLICT_RETRIES
from core.errors import ConcurrentModification

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Raised when another transaction changed (or inserted) the same rows first
CONFLICT_ERRORS = (StaleDataError, IntegrityError, OperationalError, ConcurrentModification)


def run_in_transaction(
    session_factory: Callable[[], Session],
    fn: Callable[..., T],
    *args,
    retries: int = MAX_CONFLICT_RETRIES,
    **kwargs
) -> T:
    """
    Execute fn(db, *args, **kwargs) atomically.

    Commits on success and rolls back on any error, so state and money move
    together or not at all. Conflicts re-run the whole command on a fresh
    session up to `retries` extra times; a re-run usually observes the
    winner's state and fails with a business error instead.
    """
    attempt = 0
    while True:
        db = session_factory()
        try:
            result = fn(db, *args, **kwargs)
            db.commit()
            return result
        except CONFLICT_ERRORS as e:
            db.rollback()
            attempt += 1
            if attempt > retries:
                logger.warning(f"{getattr(fn, '__name__', 'command')} gave up after {attempt} conflicting attempts: {e}")
                raise ConcurrentModification(
                    "The record was modified by another request. Please retry."
                ) from e
            logger.warning(f"Conflict in {getattr(fn, '__name__', 'command')} (attempt {attempt}), retrying: {e}")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
