"""
Admission strategy factory.
Configures how booking attempts reach the admission transaction.
"""

from typing import Optional

from slotbook.core.config import get_settings
from slotbook.services.interfaces.admission import AdmissionStrategy
from slotbook.services.interfaces.direct_admission import DirectAdmission
from slotbook.services.interfaces.queue_admission import QueueAdmission


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured admission strategy.

    ADMISSION_STRATEGY:
    - "direct" (default): row lock decides ties
    - "queue": FCFS booking queue decides ties
    """
    strategy = get_settings().ADMISSION_STRATEGY

    if strategy == 'queue':
        return QueueAdmission()
    if strategy == 'direct':
        return DirectAdmission()
    raise ValueError(f"Unknown ADMISSION_STRATEGY: {strategy!r}")


# Singleton instance
_strategy: Optional[AdmissionStrategy] = None


def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton (FastAPI dependency)."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy


def reset_admission() -> None:
    """Forget the cached strategy so the next call rereads settings."""
    global _strategy
    _strategy = None
