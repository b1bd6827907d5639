"""Kernel services: sequence allocation and the audit chain."""

from rental_kernel.services.auditor_service import AuditorService
from rental_kernel.services.sequence_service import SequenceService

__all__ = ["AuditorService", "SequenceService"]
