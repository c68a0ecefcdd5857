from __future__ import annotations

from typing import Iterable


class FreshOpsError(Exception):
    """Base class for every error raised by the derivation engine."""


class ValidationError(FreshOpsError, ValueError):
    """Bad user input. The operation is aborted before anything is written."""


class StoreError(FreshOpsError):
    """A read or write against the store failed. Prior persisted state is untouched."""


class CascadeError(StoreError):
    """
    A multi-step write failed after at least one step was committed.

    Nothing is rolled back: ``completed`` lists the steps that did persist so the
    caller can report which records need manual reconciliation.
    """

    def __init__(self, message: str, *, completed: Iterable[str] = ()):
        super().__init__(message)
        self.completed = tuple(completed)


class IncompleteDeletion(CascadeError):
    """An order delete removed some children but not the whole chain."""
