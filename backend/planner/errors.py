"""Exception taxonomy shared by the scheduling engines and the HTTP layer."""

from __future__ import annotations


class SchedulingError(RuntimeError):
    """Base class for failures that abort a scheduling operation."""


class NoBudgetAvailableError(SchedulingError, ValueError):
    """The routine offers no study time, so nothing can be placed."""

    def __init__(self, message: str = "No available study time is configured in the routine.") -> None:
        super().__init__(message)


class StructuralReferenceError(LookupError):
    """A curriculum item points at a discipline, folder or goal that no longer exists."""

    def __init__(self, item_id: str, reference_id: str, kind: str) -> None:
        self.item_id = item_id
        self.reference_id = reference_id
        self.kind = kind
        super().__init__(f"Cycle item '{item_id}' references missing {kind} '{reference_id}'.")


class DuplicateAttemptError(SchedulingError):
    """The requested action was already performed (e.g. a completed mock exam)."""


class SimuladoLockedError(SchedulingError):
    """A mock exam cannot be scheduled until its prerequisites are completed."""


__all__ = [
    "DuplicateAttemptError",
    "NoBudgetAvailableError",
    "SchedulingError",
    "SimuladoLockedError",
    "StructuralReferenceError",
]
