from __future__ import annotations


class RentalError(Exception):
    """Base class for failures raised by the rental engine and its store."""


class RentalValidationError(RentalError, ValueError):
    """Input rejected before anything was written."""


class RentalNotFound(RentalError, LookupError):
    pass


class PersistenceError(RentalError):
    """A store or auth call failed. The message is the collaborator's, unchanged."""


class RentalPartialFailure(PersistenceError):
    """A later write failed after earlier writes of the same operation succeeded.

    Nothing is rolled back. ``completed_steps`` lists what was applied so an
    operator can reconcile the rental and its items by hand.
    """

    def __init__(self, failed_step: str, completed_steps: list[str], cause: Exception):
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        last = completed_steps[-1] if completed_steps else "start"
        super().__init__(f"Partial failure after {last}: {failed_step} failed: {cause}")
