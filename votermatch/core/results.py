"""
Match candidates and match results.

A result's state is one of the outcome variants below; ``MatchResult.status``
and the optional fields are derived from it, so a confirmed result without a
best match, or an ambiguous one without candidates, cannot be built.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from .models import SafeVoterRecord
from ..segments import Segment, calculate_vote_score, determine_segment


class MatchStatus(Enum):
    """Lifecycle / classification status of a person entry."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    AMBIGUOUS = "ambiguous"
    UNMATCHED = "unmatched"
    ERROR = "error"


class ConfidenceLevel(Enum):
    """Band a single candidate's score falls into."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores (0.0-1.0) behind a candidate's composite score.

    A sub-score of None means the field was missing on one side and was left
    out of the weighted average.
    """
    name: float
    geography: Optional[float] = None
    age: Optional[float] = None
    gender: Optional[float] = None
    address: Optional[float] = None
    composite: float = 0.0

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            'name': self.name,
            'geography': self.geography,
            'age': self.age,
            'gender': self.gender,
            'address': self.address,
            'composite': self.composite,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScoreBreakdown':
        return cls(**data)


@dataclass(frozen=True)
class MatchCandidate:
    """A scored voter record proposed for a person entry."""
    record: SafeVoterRecord
    score: float
    matched_fields: FrozenSet[str] = frozenset()
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    breakdown: Optional[ScoreBreakdown] = None

    def __post_init__(self):
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Candidate score out of range: {self.score}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record': self.record.to_dict(),
            'score': self.score,
            'matched_fields': sorted(self.matched_fields),
            'confidence': self.confidence.value,
            'breakdown': self.breakdown.to_dict() if self.breakdown else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchCandidate':
        breakdown = data.get('breakdown')
        return cls(
            record=SafeVoterRecord.from_dict(data['record']),
            score=data['score'],
            matched_fields=frozenset(data.get('matched_fields', ())),
            confidence=ConfidenceLevel(data.get('confidence', 'low')),
            breakdown=ScoreBreakdown.from_dict(breakdown) if breakdown else None,
        )


def _check_sorted(candidates: Tuple[MatchCandidate, ...]) -> None:
    scores = [c.score for c in candidates]
    if scores != sorted(scores, reverse=True):
        raise ValueError("Candidates must be sorted by descending score")


# ========== Outcome variants ==========

@dataclass(frozen=True)
class Pending:
    """Submitted, not matched yet."""


@dataclass(frozen=True)
class Confirmed:
    """A single voter record was accepted, automatically or by the user."""
    best_match: SafeVoterRecord
    candidates: Tuple[MatchCandidate, ...] = ()
    user_confirmed: bool = False

    def __post_init__(self):
        if self.best_match is None:
            raise ValueError("Confirmed outcome requires a best match")
        _check_sorted(self.candidates)


@dataclass(frozen=True)
class Ambiguous:
    """One or more plausible records; a person has to choose."""
    candidates: Tuple[MatchCandidate, ...]
    needs_confirmation: bool = False  # True when even the best is a low-confidence suggestion

    def __post_init__(self):
        if not self.candidates:
            raise ValueError("Ambiguous outcome requires at least one candidate")
        _check_sorted(self.candidates)


@dataclass(frozen=True)
class Unmatched:
    """No record cleared the cutoff, the store had none, or the user rejected."""
    candidates: Tuple[MatchCandidate, ...] = ()
    user_rejected: bool = False

    def __post_init__(self):
        _check_sorted(self.candidates)


@dataclass(frozen=True)
class Failed:
    """The entry could not be matched (invalid input)."""
    reason: str


Outcome = Union[Pending, Confirmed, Ambiguous, Unmatched, Failed]

_STATUS_BY_OUTCOME = {
    Pending: MatchStatus.PENDING,
    Confirmed: MatchStatus.CONFIRMED,
    Ambiguous: MatchStatus.AMBIGUOUS,
    Unmatched: MatchStatus.UNMATCHED,
    Failed: MatchStatus.ERROR,
}


@dataclass(frozen=True)
class MatchResult:
    """Matching state for one person entry."""
    person_entry_id: str
    outcome: Outcome = field(default_factory=Pending)
    entry_fingerprint: Optional[str] = None

    def __post_init__(self):
        if type(self.outcome) not in _STATUS_BY_OUTCOME:
            raise TypeError(f"Unknown match outcome: {self.outcome!r}")

    @property
    def status(self) -> MatchStatus:
        return _STATUS_BY_OUTCOME[type(self.outcome)]

    @property
    def best_match(self) -> Optional[SafeVoterRecord]:
        if isinstance(self.outcome, Confirmed):
            return self.outcome.best_match
        return None

    @property
    def candidates(self) -> Tuple[MatchCandidate, ...]:
        return getattr(self.outcome, 'candidates', ())

    @property
    def user_confirmed(self) -> bool:
        return isinstance(self.outcome, Confirmed) and self.outcome.user_confirmed

    @property
    def is_manual(self) -> bool:
        """True when the outcome came from an explicit user action."""
        return (self.user_confirmed
                or (isinstance(self.outcome, Unmatched) and self.outcome.user_rejected))

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.outcome, Failed):
            return self.outcome.reason
        return None

    @property
    def vote_score(self) -> Optional[float]:
        best = self.best_match
        return calculate_vote_score(best) if best is not None else None

    @property
    def segment(self) -> Optional[Segment]:
        score = self.vote_score
        return determine_segment(score) if score is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize, including the derived fields, for storage or an API layer."""
        outcome = self.outcome
        data: Dict[str, Any] = {
            'person_entry_id': self.person_entry_id,
            'status': self.status.value,
            'entry_fingerprint': self.entry_fingerprint,
            'candidates': [c.to_dict() for c in self.candidates],
            'best_match': self.best_match.to_dict() if self.best_match else None,
            'user_confirmed': self.user_confirmed,
            'vote_score': self.vote_score,
            'segment': self.segment.value if self.segment else None,
        }
        if isinstance(outcome, Ambiguous):
            data['needs_confirmation'] = outcome.needs_confirmation
        if isinstance(outcome, Unmatched):
            data['user_rejected'] = outcome.user_rejected
        if isinstance(outcome, Failed):
            data['error'] = outcome.reason
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchResult':
        """Rebuild a result written by ``to_dict``. Derived fields are recomputed."""
        status = MatchStatus(data['status'])
        candidates = tuple(MatchCandidate.from_dict(c) for c in data.get('candidates', ()))

        if status is MatchStatus.CONFIRMED:
            outcome: Outcome = Confirmed(
                best_match=SafeVoterRecord.from_dict(data['best_match']),
                candidates=candidates,
                user_confirmed=bool(data.get('user_confirmed')),
            )
        elif status is MatchStatus.AMBIGUOUS:
            outcome = Ambiguous(candidates, needs_confirmation=bool(data.get('needs_confirmation')))
        elif status is MatchStatus.UNMATCHED:
            outcome = Unmatched(candidates, user_rejected=bool(data.get('user_rejected')))
        elif status is MatchStatus.ERROR:
            outcome = Failed(data.get('error') or 'unknown error')
        else:
            outcome = Pending()

        return cls(
            person_entry_id=data['person_entry_id'],
            outcome=outcome,
            entry_fingerprint=data.get('entry_fingerprint'),
        )
