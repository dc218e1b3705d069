from __future__ import annotations


class DishcoreError(Exception):
    """Base class for errors raised by the recommendation and analytics core."""


class ValidationError(DishcoreError):
    """Malformed range, filter or request parameter. Nothing was computed."""


class UpstreamQueryError(DishcoreError):
    """A collaborator store could not be queried."""


class PreferenceUpdateError(DishcoreError):
    """Preference tracking failed. Logged and swallowed by the tracker."""


class BatchStepError(DishcoreError):
    """A step of the co-occurrence batch job failed.

    Steps that completed before it keep their upserts.
    """

    def __init__(self, step: str, message: str | None = None) -> None:
        self.step = step
        super().__init__(message or f"Batch step '{step}' failed")


class BatchAlreadyRunningError(DishcoreError):
    """Another batch run holds the run lock."""
