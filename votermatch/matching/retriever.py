"""
Candidate retrieval (blocking) against a voter reference store.

Only records that share something with the person entry's last name are
ever scored. Three tiers run in order, each bounded:

1. exact normalized last name in the state, same-zip records first
2. Double Metaphone blocking key of the last name
3. trigram similarity on the last name, plus same-zip records for
   coverage. This is a fallback: it runs only when tiers 1 and 2 found no
   record whose first name is compatible with the entry's, and only when
   the store has a fuzzy index
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..cancellation import CancellationToken
from ..config import MatchingConfig, default_config
from ..core.models import PersonEntry, VoterRecord
from ..data.reference_loader import ReferenceDataLoader
from ..storage.base import ReferenceStore
from .nicknames import expand_nicknames
from .normalize import normalize_name, normalize_zip
from .phonetic import NameAlgorithms

logger = logging.getLogger(__name__)

EXACT_TIER = 'exact-name'
PHONETIC_TIER = 'phonetic-name'
FUZZY_TIER = 'fuzzy-name'


@dataclass
class RetrievalResult:
    """Deduplicated candidate records and the tier that produced each."""
    records: List[VoterRecord] = field(default_factory=list)
    tiers: Dict[str, str] = field(default_factory=dict)  # voter_id -> tier
    degraded: bool = False  # fuzzy tier was needed but skipped

    def tier_of(self, record: VoterRecord) -> str:
        return self.tiers[record.voter_id]

    def __len__(self) -> int:
        return len(self.records)


class CandidateRetriever:
    """Runs the retrieval tiers for one person entry at a time."""

    def __init__(self, store: ReferenceStore,
                 config: Optional[MatchingConfig] = None,
                 algorithms: Optional[NameAlgorithms] = None,
                 reference: Optional[ReferenceDataLoader] = None):
        """
        Initialize the retriever.

        Args:
            store: Voter reference store
            config: Retrieval limits
            algorithms: Name algorithms used for blocking keys
            reference: Nickname tables for the first-name check
        """
        self.store = store
        self.config = config or default_config
        self.algorithms = algorithms or NameAlgorithms()
        self.reference = reference
        self._degraded_logged = False
        self._log_lock = threading.Lock()

    def retrieve(self, entry: PersonEntry, state: str,
                 token: Optional[CancellationToken] = None) -> RetrievalResult:
        """
        Collect candidate voter records for a person entry.

        Records are deduplicated by voter id, keeping the first tier that
        found them; collection stops at ``max_retrieved_candidates``.

        Args:
            entry: Person entry to find candidates for
            state: State the voter file is filtered to
            token: Optional cancellation token, checked between tiers

        Returns:
            RetrievalResult with the records in retrieval order
        """
        result = RetrievalResult()
        last_name = normalize_name(entry.last_name)
        zip_code = normalize_zip(entry.zip) or None
        limit = self.config.tier_limit
        cap = self.config.max_retrieved_candidates

        if not last_name:
            return result

        def add(records: List[VoterRecord], tier: str) -> bool:
            """Merge records in; False once the cap is reached."""
            for record in records:
                if len(result.records) >= cap:
                    return False
                if record.voter_id not in result.tiers:
                    result.tiers[record.voter_id] = tier
                    result.records.append(record)
            return len(result.records) < cap

        self._check(token)
        if not add(self.store.find_by_last_name(last_name, state, limit, zip_code, token), EXACT_TIER):
            return result

        for code in self.algorithms.blocking_keys(last_name):
            self._check(token)
            if not add(self.store.find_by_phonetic_code(code, state, limit, token), PHONETIC_TIER):
                return result

        if self._has_compatible_name(entry, result.records):
            logger.debug(f"{entry.id}: name-compatible record found, fuzzy tier skipped")
            return result

        if not self.store.has_fuzzy_index():
            result.degraded = True
            self._log_degraded()
            return result

        self._check(token)
        fuzzy = self.store.find_fuzzy_last_name(
            last_name, state, limit, self.config.fuzzy_similarity_floor, token)
        if not add(fuzzy, FUZZY_TIER):
            return result

        if zip_code:
            self._check(token)
            room = min(limit, cap - len(result.records))
            add(self.store.find_by_zip(zip_code, state, room, token), FUZZY_TIER)

        logger.debug(f"Retrieved {len(result)} candidates for {entry.id}")
        return result

    def _has_compatible_name(self, entry: PersonEntry, records: List[VoterRecord]) -> bool:
        """True if a record's first name is a nickname form of, or sounds like, the entry's."""
        if not records:
            return False

        forms = expand_nicknames(entry.first_name, self.reference)
        codes = set()
        for form in forms:
            codes.update(self.algorithms.double_metaphone(form))

        for record in records:
            first = normalize_name(record.first_name)
            if first in forms or codes & set(self.algorithms.double_metaphone(first)):
                return True
        return False

    @staticmethod
    def _check(token: Optional[CancellationToken]) -> None:
        if token is not None:
            token.raise_if_cancelled()

    def _log_degraded(self) -> None:
        with self._log_lock:
            if self._degraded_logged:
                return
            self._degraded_logged = True
        logger.warning("Voter store has no fuzzy index; trigram retrieval tier is skipped")
