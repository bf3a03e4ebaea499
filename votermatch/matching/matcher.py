"""
Voter matching engine.

Runs each person entry through retrieval, scoring and classification on a
bounded worker pool, and records results and manual decisions in the
match-result store.
"""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional

from ..cancellation import CancellationToken
from ..config import MatchingConfig, default_config
from ..core.models import PersonEntry, SafeVoterRecord
from ..core.results import Confirmed, Failed, MatchCandidate, MatchResult, Unmatched
from ..data.reference_loader import ReferenceDataLoader
from ..exceptions import InvalidPersonEntryError, MatchCancelledError, UnknownPersonError
from ..segments import segment_results
from ..storage.base import ReferenceStore
from ..storage.results import AuditAction, MatchResultStore
from .classifier import ConfidenceClassifier
from .metro import MetroResolver
from .normalize import normalize_name
from .phonetic import NameAlgorithms
from .retriever import CandidateRetriever
from .scorer import SimilarityScorer

logger = logging.getLogger(__name__)


class VoterMatcher:
    """
    Matches person entries against a voter reference store.

    Matching strategy per entry:
    1. Validate (a first and a last name are required)
    2. Retrieve candidates: exact last name, phonetic key, trigram fuzzy
    3. Score each candidate on name, geography, age, gender and address
    4. Classify as confirmed, ambiguous or unmatched

    The name algorithms, metro tables and reference data are built once and
    shared read-only by all worker threads.
    """

    def __init__(self, store: ReferenceStore,
                 results: Optional[MatchResultStore] = None,
                 config: Optional[MatchingConfig] = None,
                 algorithms: Optional[NameAlgorithms] = None,
                 reference: Optional[ReferenceDataLoader] = None):
        """
        Initialize the matcher.

        Args:
            store: Voter reference store
            results: Match-result store (defaults to an in-memory one)
            config: Matching options
            algorithms: Phonetic and string-similarity service
            reference: Nickname and metro tables (defaults to the packaged ones)
        """
        self.store = store
        self.config = config or default_config
        self.algorithms = algorithms or NameAlgorithms()
        self.results = results if results is not None else MatchResultStore()

        self.retriever = CandidateRetriever(store, self.config, self.algorithms, reference)
        self.scorer = SimilarityScorer(self.config, self.algorithms,
                                       MetroResolver(reference), reference)
        self.classifier = ConfidenceClassifier(self.config)

    # ========== Lifecycle ==========

    def submit(self, people: Iterable[PersonEntry]) -> List[MatchResult]:
        """Register person entries with a Pending result (existing results are kept)."""
        return [self.results.create_pending(p.id, p.fingerprint()) for p in people]

    def get_result(self, person_id: str) -> Optional[MatchResult]:
        """Current result for a person entry."""
        return self.results.get(person_id)

    def remove_person(self, person_id: str) -> bool:
        """Delete a person entry's result. Returns False if there was none."""
        return self.results.remove(person_id)

    # ========== Matching ==========

    def match(self, people: Iterable[PersonEntry], state: str,
              token: Optional[CancellationToken] = None) -> List[MatchResult]:
        """
        Match a batch of person entries.

        Entries with missing names get an error result; the rest of the
        batch carries on. A store failure aborts the whole batch.

        Args:
            people: Person entries to match
            state: State the voter file is filtered to
            token: Optional cancellation token

        Returns:
            One MatchResult per entry, in input order

        Raises:
            MatchingUnavailableError: The reference store cannot be queried
            MatchCancelledError: The token tripped; ``completed`` holds the
                results that finished (already stored)
        """
        people = list(people)
        if not people:
            return []

        self.store.ping()

        workers = min(self.config.max_workers, len(people))
        if self.store.max_concurrency:
            workers = min(workers, self.store.max_concurrency)

        logger.info(f"Matching {len(people)} entries in {state} with {workers} workers")

        completed: Dict[int, MatchResult] = {}
        failure: Optional[Exception] = None

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='votermatch') as executor:
            futures = {
                executor.submit(self._match_entry, entry, state, token): index
                for index, entry in enumerate(people)
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                try:
                    completed[futures[future]] = future.result()
                except Exception as e:
                    if failure is None:
                        failure = e
                        for pending in futures:
                            pending.cancel()

        ordered = [completed[i] for i in sorted(completed)]

        if isinstance(failure, MatchCancelledError):
            logger.info(f"Matching cancelled after {len(ordered)} of {len(people)} entries")
            raise MatchCancelledError(
                f"Matching cancelled after {len(ordered)} of {len(people)} entries",
                completed=ordered,
            ) from failure
        if failure is not None:
            raise failure

        summary = Counter(r.status.value for r in ordered)
        logger.info(f"Matched {len(ordered)} entries: {dict(summary)}")
        return ordered

    def match_one(self, entry: PersonEntry, state: str,
                  token: Optional[CancellationToken] = None) -> MatchResult:
        """Match a single person entry and store the result."""
        return self._match_entry(entry, state, token)

    def _match_entry(self, entry: PersonEntry, state: str,
                     token: Optional[CancellationToken]) -> MatchResult:
        if token is not None:
            token.raise_if_cancelled()

        fingerprint = entry.fingerprint()
        try:
            self._validate(entry)
        except InvalidPersonEntryError as e:
            logger.warning(f"Skipping invalid entry: {e}")
            return self.results.save_automatic(MatchResult(entry.id, Failed(e.reason), fingerprint))

        retrieval = self.retriever.retrieve(entry, state, token)
        candidates = self.scorer.score_all(entry, retrieval)

        if token is not None:
            token.raise_if_cancelled()

        result = self.classifier.classify(entry.id, candidates, fingerprint)
        return self.results.save_automatic(result)

    @staticmethod
    def _validate(entry: PersonEntry) -> None:
        missing = [label for label, value in (('first name', entry.first_name),
                                              ('last name', entry.last_name))
                   if not normalize_name(value)]
        if missing:
            raise InvalidPersonEntryError(entry.id, f"missing {' and '.join(missing)}")

    # ========== Manual decisions ==========

    def confirm_match(self, person_id: str,
                      chosen: SafeVoterRecord | MatchCandidate) -> MatchResult:
        """
        Record that the user picked a voter record for a person entry.

        Later automatic matching keeps this choice unless the entry changes.

        Raises:
            UnknownPersonError: The entry was never submitted or matched
        """
        existing = self._require(person_id)
        record = chosen.record if isinstance(chosen, MatchCandidate) else chosen

        result = MatchResult(
            person_id,
            Confirmed(best_match=record, candidates=existing.candidates, user_confirmed=True),
            existing.entry_fingerprint,
        )
        logger.info(f"{person_id}: confirmed by user ({record.full_name()})")
        return self.results.save_manual(result, AuditAction.CONFIRM)

    def reject_match(self, person_id: str) -> MatchResult:
        """
        Record that none of the candidates is the person.

        Raises:
            UnknownPersonError: The entry was never submitted or matched
        """
        existing = self._require(person_id)
        result = MatchResult(
            person_id,
            Unmatched(candidates=existing.candidates, user_rejected=True),
            existing.entry_fingerprint,
        )
        logger.info(f"{person_id}: rejected by user")
        return self.results.save_manual(result, AuditAction.REJECT)

    def _require(self, person_id: str) -> MatchResult:
        existing = self.results.get(person_id)
        if existing is None:
            raise UnknownPersonError(person_id)
        return existing

    # ========== Reporting ==========

    def segments(self) -> Dict[str, object]:
        """Stored results grouped by turnout segment."""
        return segment_results(self.results.all())
