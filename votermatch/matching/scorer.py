"""
Similarity scoring between a person entry and a voter record.

Calculates a sub-score for each field both sides carry and combines them
into a weighted composite.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import FrozenSet, List, Optional, Set, Tuple

from ..config import MatchingConfig, default_config
from ..core.models import PersonEntry, VoterRecord
from ..core.results import ConfidenceLevel, MatchCandidate, ScoreBreakdown
from ..data.reference_loader import ReferenceDataLoader
from .metro import MetroResolver
from .nicknames import expand_nicknames
from .normalize import normalize_address, normalize_city, normalize_name, normalize_zip
from .phonetic import NameAlgorithms
from .retriever import RetrievalResult

logger = logging.getLogger(__name__)

# Age ranges as offsets from the current year: (oldest, youngest)
AGE_RANGE_OFFSETS = {
    'under-25': (24, 18),
    '25-34': (34, 25),
    '35-44': (44, 35),
    '45-54': (54, 45),
    '55-64': (64, 55),
}
OLDEST_BIRTH_YEAR = 1900


def _current_year(current_year: Optional[int] = None) -> int:
    return current_year or date.today().year


def age_range_to_years(age_range: str, current_year: Optional[int] = None) -> Tuple[int, int]:
    """
    Birth-year window of an age range.

    Args:
        age_range: One of the AGE_RANGES values
        current_year: Reference year (defaults to this year)

    Returns:
        (earliest, latest) birth year, inclusive
    """
    year = _current_year(current_year)
    if age_range == '65+':
        return OLDEST_BIRTH_YEAR, year - 65
    if age_range in AGE_RANGE_OFFSETS:
        oldest, youngest = AGE_RANGE_OFFSETS[age_range]
        return year - oldest, year - youngest
    return OLDEST_BIRTH_YEAR, year


def birth_year_in_range(birth_year: int, age_range: str, current_year: Optional[int] = None) -> bool:
    """True if someone born in ``birth_year`` falls in ``age_range``."""
    earliest, latest = age_range_to_years(age_range, current_year)
    return earliest <= birth_year <= latest


def _gender(value: Optional[str]) -> Optional[str]:
    """'M' or 'F'; anything else (including 'U') counts as unknown."""
    value = (value or '').strip().upper()[:1]
    return value if value in ('M', 'F') else None


@dataclass(frozen=True)
class PreparedQuery:
    """A person entry normalized once for scoring against many records."""
    entry: PersonEntry
    first_name: str
    last_name: str
    nickname_forms: FrozenSet[str]
    city: str
    zip: str
    gender: Optional[str]
    address: str


class SimilarityScorer:
    """
    Calculates match scores between person entries and voter records.

    Default weights (renormalized over the sub-scores present):
    - Name: 55%
    - Geography (city/zip): 20%
    - Age: 12%
    - Address: 8%
    - Gender: 5%
    """

    FIRST_NAME_WEIGHT = 0.45
    LAST_NAME_WEIGHT = 0.55

    # Exact-age tolerance (years) -> score
    AGE_STEPS = ((1, 1.0), (3, 0.6), (5, 0.3))
    AGE_RANGE_SLACK = 2

    CITY_FIELD_THRESHOLD = 0.85
    ADDRESS_FIELD_THRESHOLD = 0.8

    def __init__(self, config: Optional[MatchingConfig] = None,
                 algorithms: Optional[NameAlgorithms] = None,
                 resolver: Optional[MetroResolver] = None,
                 reference: Optional[ReferenceDataLoader] = None):
        self.config = config or default_config
        self.algorithms = algorithms or NameAlgorithms()
        self.resolver = resolver or MetroResolver(reference)
        self.reference = reference
        self.weights = dict(self.config.scoring_weights)

    def prepare(self, entry: PersonEntry) -> PreparedQuery:
        """Normalize a person entry for scoring."""
        return PreparedQuery(
            entry=entry,
            first_name=normalize_name(entry.first_name),
            last_name=normalize_name(entry.last_name),
            nickname_forms=expand_nicknames(entry.first_name, self.reference),
            city=normalize_city(entry.city),
            zip=normalize_zip(entry.zip),
            gender=_gender(entry.gender),
            address=normalize_address(entry.address),
        )

    def score(self, query: PersonEntry | PreparedQuery, record: VoterRecord,
              tier: Optional[str] = None) -> ScoreBreakdown:
        """
        Calculate the score breakdown for one record.

        Args:
            query: Person entry (or an already prepared one)
            record: Voter record to compare with
            tier: Retrieval tier that found the record

        Returns:
            ScoreBreakdown with the composite score
        """
        breakdown, _ = self._evaluate(self._prepared(query), record, tier)
        return breakdown

    def score_candidate(self, query: PersonEntry | PreparedQuery, record: VoterRecord,
                        tier: Optional[str] = None) -> MatchCandidate:
        """Score a record and wrap it as a MatchCandidate."""
        breakdown, matched = self._evaluate(self._prepared(query), record, tier)
        return MatchCandidate(
            record=record.to_safe(),
            score=breakdown.composite,
            matched_fields=frozenset(matched),
            confidence=self.confidence_level(breakdown.composite),
            breakdown=breakdown,
        )

    def score_all(self, entry: PersonEntry, retrieval: RetrievalResult) -> List[MatchCandidate]:
        """Score every retrieved record for an entry, in retrieval order."""
        query = self.prepare(entry)
        return [self.score_candidate(query, record, retrieval.tier_of(record))
                for record in retrieval.records]

    def confidence_level(self, score: float) -> ConfidenceLevel:
        if score >= self.config.high_confidence_threshold:
            return ConfidenceLevel.HIGH
        if score >= self.config.medium_confidence_threshold:
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    def _prepared(self, query) -> PreparedQuery:
        return query if isinstance(query, PreparedQuery) else self.prepare(query)

    def _evaluate(self, query: PreparedQuery, record: VoterRecord,
                  tier: Optional[str]) -> Tuple[ScoreBreakdown, Set[str]]:
        matched: Set[str] = set()
        if tier:
            matched.add(tier)

        name = self._score_name(query, record, matched)
        geography = self._score_geography(query, record, matched)
        age = self._score_age(query, record, matched)
        gender = self._score_gender(query, record, matched)
        address = self._score_address(query, record, matched)

        subscores = {
            'name': name,
            'geography': geography,
            'age': age,
            'gender': gender,
            'address': address,
        }

        weighted = 0.0
        total_weight = 0.0
        for key, value in subscores.items():
            weight = self.weights.get(key, 0.0)
            if value is None or weight <= 0:
                continue
            weighted += weight * value
            total_weight += weight

        composite = weighted / total_weight if total_weight else 0.0
        composite = round(min(max(composite, 0.0), 1.0), 6)

        return ScoreBreakdown(composite=composite, **subscores), matched

    def _score_name(self, query: PreparedQuery, record: VoterRecord, matched: Set[str]) -> float:
        """
        Score first and last name.

        The first name counts as a full match when the record's first name
        is one of the entry's nickname forms; otherwise the best
        Jaro-Winkler similarity over those forms is used.
        """
        jw = self.algorithms.jaro_winkler
        record_first = normalize_name(record.first_name)
        record_last = normalize_name(record.last_name)

        forms = query.nickname_forms or frozenset({query.first_name})
        if record_first and record_first in forms:
            first = 1.0
            if record_first != query.first_name:
                matched.add('nickname')
        else:
            first = max((jw(form, record_first) for form in forms), default=0.0)

        last = jw(query.last_name, record_last)
        return round(min(self.FIRST_NAME_WEIGHT * first + self.LAST_NAME_WEIGHT * last, 1.0), 6)

    def _score_geography(self, query: PreparedQuery, record: VoterRecord,
                         matched: Set[str]) -> Optional[float]:
        record_city = normalize_city(record.city)
        record_zip = normalize_zip(record.zip)
        if not ((query.city and record_city) or (query.zip and record_zip)):
            return None

        score = self.resolver.get_city_match_score(
            query.city, record_city, query.zip, record_zip,
            similarity=self.algorithms.jaro_winkler,
        )
        if query.city and record_city and score > self.CITY_FIELD_THRESHOLD:
            matched.add('city')
        if query.zip and query.zip == record_zip:
            matched.add('zip')
        return score

    def _score_age(self, query: PreparedQuery, record: VoterRecord,
                   matched: Set[str]) -> Optional[float]:
        birth_year = record.birth_year
        entry = query.entry
        if birth_year is None:
            return None

        year = _current_year(self.config.current_year)

        if entry.age is not None:
            diff = abs(birth_year - (year - entry.age))
            for tolerance, score in self.AGE_STEPS:
                if diff <= tolerance:
                    if score == 1.0:
                        matched.add('exact-age')
                    return score
            return 0.0

        if entry.age_range:
            earliest, latest = age_range_to_years(entry.age_range, year)
            if earliest <= birth_year <= latest:
                matched.add('age-range')
                return 1.0
            if earliest - self.AGE_RANGE_SLACK <= birth_year <= latest + self.AGE_RANGE_SLACK:
                return 0.5
            return 0.0

        return None

    def _score_gender(self, query: PreparedQuery, record: VoterRecord,
                      matched: Set[str]) -> Optional[float]:
        record_gender = _gender(record.gender)
        if query.gender is None or record_gender is None:
            return None
        if query.gender == record_gender:
            matched.add('gender')
            return 1.0
        return 0.0

    def _score_address(self, query: PreparedQuery, record: VoterRecord,
                       matched: Set[str]) -> Optional[float]:
        record_address = normalize_address(record.residential_address)
        if not query.address or not record_address:
            return None
        score = self.algorithms.jaro_winkler(query.address, record_address)
        if score > self.ADDRESS_FIELD_THRESHOLD:
            matched.add('address')
        return score
