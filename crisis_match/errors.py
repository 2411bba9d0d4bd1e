"""Matching error taxonomy.

Only InvalidCriteria escapes the match engine; every other error is resolved
into a match or a fallback decision at the engine boundary.
"""

from typing import Optional


class MatchingError(Exception):
    """Base class for matching errors."""


class InvalidCriteria(MatchingError, ValueError):
    """The match request failed validation before matching started."""

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class NoAvailableResponders(MatchingError):
    """No candidate survived the availability query and hard filters."""


class CapacityExceeded(MatchingError):
    """A reservation raced with another and the responder is full."""

    def __init__(self, responder_id: str, message: Optional[str] = None):
        super().__init__(message or f"Responder {responder_id} has no remaining capacity")
        self.responder_id = responder_id


class MatchTimeout(MatchingError):
    """The request exceeded its time budget."""


class DependencyUnavailable(MatchingError):
    """A collaborator (profile store, quality or workload source) failed."""

    def __init__(self, dependency: str, message: Optional[str] = None):
        super().__init__(message or f"{dependency} is unavailable")
        self.dependency = dependency


class UnknownResponder(MatchingError, KeyError):
    """The responder is not known to the registry."""

    def __init__(self, responder_id: str):
        super().__init__(responder_id)
        self.responder_id = responder_id

    def __str__(self) -> str:
        return f"Unknown responder: {self.responder_id}"
