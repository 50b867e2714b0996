# Overview: Service-layer helpers for retrying store writes and translating driver failures.

from __future__ import annotations

import time

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import Throttled, Unavailable
from ..extensions import db


# Driver messages that mean "busy, try again" rather than "down"
_CONTENTION_MARKERS = (
    "database is locked",
    "database is busy",
    "deadlock",
    "could not serialize",
    "lock wait timeout",
    "too many connections",
)


def is_contention(exc: Exception) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


def translate_db_error(exc: Exception) -> Exception:
    """Map a driver failure onto the store error taxonomy."""
    if isinstance(exc, StaleDataError) or is_contention(exc):
        return Throttled("Store is busy, retry later")
    return Unavailable("Store is unavailable")


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks, dropped connections) and StaleDataError
    with exponential back-off. When the attempts are exhausted the failure is
    raised as Throttled or Unavailable; other DB errors are translated without
    retrying.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise translate_db_error(exc) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except DBAPIError as exc:
            db.session.rollback()
            if exc.connection_invalidated:
                raise Unavailable("Store connection lost") from exc
            raise
