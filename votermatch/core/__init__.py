"""Core data models for person entries, voter records and match results."""

from .models import (
    PersonEntry,
    VoterRecord,
    SafeVoterRecord,
    ELECTION_FIELDS,
    AGE_RANGES,
    RELATIONSHIP_CATEGORIES,
)

__all__ = [
    'PersonEntry',
    'VoterRecord',
    'SafeVoterRecord',
    'ELECTION_FIELDS',
    'AGE_RANGES',
    'RELATIONSHIP_CATEGORIES',
]
