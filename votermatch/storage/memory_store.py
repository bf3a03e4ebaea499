"""In-memory voter reference store for small voter files and tests."""

import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.models import VoterRecord
from ..matching.normalize import normalize_name, normalize_zip
from ..matching.phonetic import NameAlgorithms
from .base import ReferenceStore

logger = logging.getLogger(__name__)


class InMemoryVoterStore(ReferenceStore):
    """
    Voter records held in dictionaries keyed by state.

    Indexes last name, blocking key and zip. The fuzzy tier scans the
    state's records with trigram similarity, so it always reports a fuzzy
    index.
    """

    def __init__(self, records: Iterable[VoterRecord] = (),
                 algorithms: Optional[NameAlgorithms] = None):
        self.algorithms = algorithms or NameAlgorithms()
        self._lock = threading.RLock()
        self._by_id: Dict[str, VoterRecord] = {}
        self._by_last_name: Dict[Tuple[str, str], List[VoterRecord]] = defaultdict(list)
        self._by_code: Dict[Tuple[str, str], List[VoterRecord]] = defaultdict(list)
        self._by_zip: Dict[Tuple[str, str], List[VoterRecord]] = defaultdict(list)
        self._by_state: Dict[str, List[VoterRecord]] = defaultdict(list)
        self.add(records)

    def __len__(self) -> int:
        return len(self._by_id)

    def add(self, records: Iterable[VoterRecord]) -> int:
        """Index records; a record with a known voter id replaces the old one."""
        added = 0
        with self._lock:
            for record in records:
                if record.voter_id in self._by_id:
                    self._remove(self._by_id[record.voter_id])

                state = (record.state or '').upper()
                self._by_id[record.voter_id] = record
                self._by_state[state].append(record)
                self._by_last_name[(state, normalize_name(record.last_name))].append(record)
                for code in self.algorithms.blocking_keys(record.last_name):
                    self._by_code[(state, code)].append(record)
                zip5 = normalize_zip(record.zip)
                if zip5:
                    self._by_zip[(state, zip5)].append(record)
                added += 1

        logger.debug(f"Indexed {added} voter records in memory")
        return added

    def _remove(self, record: VoterRecord) -> None:
        for index in (self._by_state, self._by_last_name, self._by_code, self._by_zip):
            for bucket in index.values():
                if record in bucket:
                    bucket.remove(record)

    def _lookup(self, index, key) -> List[VoterRecord]:
        with self._lock:
            return sorted(index.get(key, ()), key=lambda r: r.voter_id)

    def find_by_last_name(self, last_name, state, limit, zip_code=None, token=None):
        if token is not None:
            token.raise_if_cancelled()
        records = self._lookup(self._by_last_name, (state.upper(), last_name))
        zip5 = normalize_zip(zip_code)
        if zip5:
            # Stable sort keeps voter-id order within each group
            records.sort(key=lambda r: normalize_zip(r.zip) != zip5)
        return records[:limit]

    def find_by_phonetic_code(self, code, state, limit, token=None):
        if token is not None:
            token.raise_if_cancelled()
        return self._lookup(self._by_code, (state.upper(), code))[:limit]

    def find_fuzzy_last_name(self, last_name, state, limit, min_similarity, token=None):
        if token is not None:
            token.raise_if_cancelled()

        scored = []
        for record in self._lookup(self._by_state, state.upper()):
            similarity = self.algorithms.trigram_similarity(last_name, record.last_name)
            if similarity > min_similarity:
                scored.append((similarity, record))

        scored.sort(key=lambda pair: (-pair[0], pair[1].voter_id))
        return [record for _, record in scored[:limit]]

    def find_by_zip(self, zip_code, state, limit, token=None):
        if token is not None:
            token.raise_if_cancelled()
        return self._lookup(self._by_zip, (state.upper(), normalize_zip(zip_code)))[:limit]

    def has_fuzzy_index(self) -> bool:
        return True

    def ping(self) -> None:
        pass
