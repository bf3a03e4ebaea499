"""
Vote-score and turnout-segment calculation.

Pure functions over a matched record's six vote-history flags.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Union

from .core.models import ELECTION_FIELDS, SafeVoterRecord, VoterRecord

VOTED_VALUES = frozenset({'Y', 'A', 'E'})

VOTE_METHODS = {
    'Y': 'In Person',
    'A': 'Absentee',
    'E': 'Early',
}


class Segment(Enum):
    """Coarse turnout-propensity label."""
    SUPER_VOTER = "super-voter"
    SOMETIMES_VOTER = "sometimes-voter"
    RARELY_VOTER = "rarely-voter"


@dataclass(frozen=True)
class VoteHistoryDetail:
    """One election from a record's vote history."""
    election: str
    year: str
    type: str  # 'General' or 'Primary'
    voted: bool
    method: str


def calculate_vote_score(record: Union[VoterRecord, SafeVoterRecord]) -> float:
    """Fraction of the six tracked elections the voter took part in."""
    history = record.vote_history
    voted = sum(1 for name in ELECTION_FIELDS if history.get(name) in VOTED_VALUES)
    return voted / len(ELECTION_FIELDS)


def determine_segment(score: float) -> Segment:
    """Bucket a vote score into a segment."""
    if score >= 0.8:
        return Segment.SUPER_VOTER
    if score >= 0.3:
        return Segment.SOMETIMES_VOTER
    return Segment.RARELY_VOTER


def vote_history_detail(record: Union[VoterRecord, SafeVoterRecord]) -> List[VoteHistoryDetail]:
    """Per-election breakdown, e.g. for a voter card."""
    details = []
    for name in ELECTION_FIELDS:
        value = record.vote_history.get(name, '')
        details.append(VoteHistoryDetail(
            election=name,
            year=name[2:6],
            type='General' if name.endswith('G') else 'Primary',
            voted=value in VOTED_VALUES,
            method=VOTE_METHODS.get(value, 'Did Not Vote'),
        ))
    return details


def segment_results(results: Iterable) -> Dict[str, object]:
    """
    Group match results by segment.

    Results with a best match are grouped by their segment; unmatched
    results are listed separately.

    Returns:
        Dictionary with super_voters, sometimes_voters, rarely_voters,
        unmatched, total_entered and total_matched
    """
    # Imported here to avoid a cycle with core.results
    from .core.results import MatchStatus

    results = list(results)
    matched = [r for r in results if r.segment is not None]

    return {
        'super_voters': [r for r in matched if r.segment is Segment.SUPER_VOTER],
        'sometimes_voters': [r for r in matched if r.segment is Segment.SOMETIMES_VOTER],
        'rarely_voters': [r for r in matched if r.segment is Segment.RARELY_VOTER],
        'unmatched': [r for r in results if r.status is MatchStatus.UNMATCHED],
        'total_entered': len(results),
        'total_matched': len(matched),
    }
