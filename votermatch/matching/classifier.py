"""
Confidence classification of scored candidates.

Turns a person entry's scored candidates into one outcome:
- CONFIRMED: a single clear best match above the high threshold
- AMBIGUOUS: plausible matches a person has to choose between
- UNMATCHED: nothing cleared the low cutoff
"""

import logging
from typing import Iterable, List, Optional, Tuple

from ..config import MatchingConfig, default_config
from ..core.results import Ambiguous, Confirmed, MatchCandidate, MatchResult, Unmatched

logger = logging.getLogger(__name__)

# Absorbs float error when comparing the score gap with the margin
MARGIN_EPSILON = 1e-9


def candidate_sort_key(candidate: MatchCandidate) -> Tuple:
    """
    Ordering of candidates, best first.

    Score, then geography sub-score, then name sub-score, then the record's
    own fields so equal candidates always come out in the same order.
    """
    breakdown = candidate.breakdown
    geography = breakdown.geography if breakdown and breakdown.geography is not None else -1.0
    name = breakdown.name if breakdown else -1.0
    record = candidate.record
    return (
        -candidate.score,
        -geography,
        -name,
        record.last_name.lower(),
        record.first_name.lower(),
        record.zip,
        record.residential_address.lower(),
        record.birth_year or 0,
    )


class ConfidenceClassifier:
    """Assigns a match outcome from ranked candidates."""

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or default_config

    def rank(self, candidates: Iterable[MatchCandidate]) -> List[MatchCandidate]:
        """Sort best first, drop those under the low cutoff, and truncate."""
        ranked = sorted(candidates, key=candidate_sort_key)
        kept = [c for c in ranked if c.score >= self.config.low_cutoff]
        return kept[:self.config.max_candidates_per_person]

    def classify(self, person_id: str, candidates: Iterable[MatchCandidate],
                 entry_fingerprint: Optional[str] = None) -> MatchResult:
        """
        Classify a person entry's candidates.

        Args:
            person_id: Person entry id
            candidates: Scored candidates in any order
            entry_fingerprint: Fingerprint of the entry that was matched

        Returns:
            MatchResult with a Confirmed, Ambiguous or Unmatched outcome
        """
        config = self.config
        kept = tuple(self.rank(candidates))

        if not kept:
            return MatchResult(person_id, Unmatched(), entry_fingerprint)

        top = kept[0].score
        second = kept[1].score if len(kept) > 1 else 0.0

        if (top >= config.high_confidence_threshold
                and top - second >= config.ambiguity_margin - MARGIN_EPSILON):
            outcome = Confirmed(best_match=kept[0].record, candidates=kept)
        elif top >= config.medium_confidence_threshold:
            outcome = Ambiguous(kept)
        else:
            outcome = Ambiguous(kept, needs_confirmation=True)

        logger.debug(f"{person_id}: {type(outcome).__name__} (top={top:.3f}, second={second:.3f})")
        return MatchResult(person_id, outcome, entry_fingerprint)
