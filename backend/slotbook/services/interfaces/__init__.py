"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .admission import AdmissionStrategy
from .direct_admission import DirectAdmission
from .queue_admission import QueueAdmission

__all__ = ['AdmissionStrategy', 'DirectAdmission', 'QueueAdmission']
