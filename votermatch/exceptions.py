"""
Exception types raised by the matching engine.

Only store-level failures abort a batch. Problems with a single person entry
are reported as that entry's result instead of being raised.
"""

from typing import List, Optional


class VoterMatchError(Exception):
    """Base exception for matching errors."""
    pass


class ConfigurationError(VoterMatchError):
    """Raised when matching options are invalid."""
    pass


class MatchingUnavailableError(VoterMatchError):
    """Raised when the reference store cannot serve a batch at all."""
    pass


class InvalidPersonEntryError(VoterMatchError):
    """Raised when a person entry cannot be matched (missing name fields)."""

    def __init__(self, person_id: str, reason: str):
        super().__init__(f"Person entry {person_id}: {reason}")
        self.person_id = person_id
        self.reason = reason


class MatchCancelledError(VoterMatchError):
    """Raised when a batch is cancelled; carries the results that finished."""

    def __init__(self, message: str = "Matching was cancelled", completed: Optional[List] = None):
        super().__init__(message)
        self.completed = completed or []


class UnknownPersonError(VoterMatchError, KeyError):
    """Raised when a manual action names a person entry that was never submitted."""

    def __init__(self, person_id: str):
        super().__init__(f"No match result for person entry {person_id}")
        self.person_id = person_id

    def __str__(self) -> str:
        return self.args[0]
