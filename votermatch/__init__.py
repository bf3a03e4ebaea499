"""votermatch - Match volunteer-entered contacts to voter-file records."""

__version__ = "0.1.0"

from .core.models import PersonEntry, VoterRecord, SafeVoterRecord
from .core.results import MatchResult, MatchCandidate, MatchStatus
from .cancellation import CancellationToken
from .config import MatchingConfig, load_config
from .matching import VoterMatcher, NameAlgorithms
from .storage import SQLiteVoterStore, InMemoryVoterStore, MatchResultStore, load_voter_csv
from .segments import Segment, calculate_vote_score, determine_segment

__all__ = [
    'PersonEntry',
    'VoterRecord',
    'SafeVoterRecord',
    'MatchResult',
    'MatchCandidate',
    'MatchStatus',
    'CancellationToken',
    'MatchingConfig',
    'load_config',
    'VoterMatcher',
    'NameAlgorithms',
    'SQLiteVoterStore',
    'InMemoryVoterStore',
    'MatchResultStore',
    'load_voter_csv',
    'Segment',
    'calculate_vote_score',
    'determine_segment',
]
