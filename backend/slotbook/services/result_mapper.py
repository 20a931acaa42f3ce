"""
Storage error → outcome mapping.

Low-level failures raised by the Slot Store are matched on structured codes
exposed by the driver, never on message text:

  - PostgreSQL: SQLSTATE (asyncpg exposes it as `sqlstate`, SQLAlchemy's
    adapted exception as `pgcode`/`sqlstate`)
  - SQLite: extended error name (`sqlite_errorname`, e.g. SQLITE_CONSTRAINT_UNIQUE)

STORAGE_ERROR_KINDS is the configuration: add codes there, not branches here.
Transient kinds (someone else won the race) are reported as Conflict, the same
outcome a caller gets from an explicit status check. The mapper never retries;
the admission transaction decides whether to run once more.
"""

from typing import Optional

from sqlalchemy.exc import DBAPIError

from slotbook.core.errors import AdmissionError, Conflict, Internal
from slotbook.core.logging import get_logger
from slotbook.core.metrics import record_storage_conflict

logger = get_logger(__name__)

UNIQUE_VIOLATION = "unique_violation"
EXCLUSION_VIOLATION = "exclusion_violation"
SERIALIZATION_FAILURE = "serialization_failure"
DEADLOCK = "deadlock_detected"
LOCK_NOT_AVAILABLE = "lock_not_available"

STORAGE_ERROR_KINDS = {
    # PostgreSQL SQLSTATE
    "23505": UNIQUE_VIOLATION,
    "23P01": EXCLUSION_VIOLATION,
    "40001": SERIALIZATION_FAILURE,
    "40P01": DEADLOCK,
    "55P03": LOCK_NOT_AVAILABLE,
    # SQLite extended result codes
    "SQLITE_CONSTRAINT_UNIQUE": UNIQUE_VIOLATION,
    "SQLITE_CONSTRAINT_PRIMARYKEY": UNIQUE_VIOLATION,
    "SQLITE_BUSY": LOCK_NOT_AVAILABLE,
    "SQLITE_BUSY_SNAPSHOT": SERIALIZATION_FAILURE,
}

TRANSIENT_KINDS = frozenset({SERIALIZATION_FAILURE, DEADLOCK, LOCK_NOT_AVAILABLE})

_CONCURRENT_UPDATE = "The request conflicted with a concurrent update, please retry"

# Default outcome per kind. A caller that knows which constraint its write
# can hit (e.g. the admission insert) passes its own outcomes on top.
DEFAULT_OUTCOMES = {
    UNIQUE_VIOLATION: ("UNIQUE_VIOLATION", "A conflicting record already exists"),
    EXCLUSION_VIOLATION: ("SLOT_OVERLAP", "Slot overlaps with an existing slot for this host"),
    SERIALIZATION_FAILURE: ("TRANSACTION_CONFLICT", _CONCURRENT_UPDATE),
    DEADLOCK: ("TRANSACTION_CONFLICT", _CONCURRENT_UPDATE),
    LOCK_NOT_AVAILABLE: ("TRANSACTION_CONFLICT", _CONCURRENT_UPDATE),
}


def _error_codes(exc: BaseException):
    """Yield every structured code found on the exception and its causes."""
    seen = set()
    current = exc.orig if isinstance(exc, DBAPIError) else exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        for attr in ("sqlstate", "pgcode", "sqlite_errorname"):
            value = getattr(current, attr, None)
            if isinstance(value, str) and value:
                yield value
        current = current.__cause__


def classify(exc: BaseException) -> Optional[str]:
    """Return the storage error kind, or None when the error is not recognised."""
    for code in _error_codes(exc):
        kind = STORAGE_ERROR_KINDS.get(code)
        if kind is not None:
            return kind
    return None


def is_transient(exc: BaseException) -> bool:
    return classify(exc) in TRANSIENT_KINDS


def map_storage_error(exc: BaseException, outcomes: Optional[dict] = None) -> AdmissionError:
    """
    Translate a storage failure into a caller-facing rejection.

    outcomes maps a kind to (reason, message) and overrides DEFAULT_OUTCOMES.
    """
    kind = classify(exc)
    if kind is None:
        logger.error("storage_error_unmapped", error_type=type(exc).__name__, exc_info=exc)
        return Internal("An unexpected error occurred")

    record_storage_conflict(kind)
    reason, message = {**DEFAULT_OUTCOMES, **(outcomes or {})}[kind]
    logger.info("storage_conflict", kind=kind, reason=reason)
    return Conflict(message, reason)
