"""Voter reference stores and the match-result store."""

from .base import ReferenceStore
from .sqlite_store import SQLiteVoterStore
from .memory_store import InMemoryVoterStore
from .results import MatchResultStore
from .voter_file import load_voter_csv

__all__ = [
    'ReferenceStore',
    'SQLiteVoterStore',
    'InMemoryVoterStore',
    'MatchResultStore',
    'load_voter_csv',
]
