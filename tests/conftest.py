"""Shared fixtures for the votermatch tests."""

import itertools

import pytest

from votermatch.config import MatchingConfig
from votermatch.core.models import PersonEntry, VoterRecord
from votermatch.matching import VoterMatcher
from votermatch.matching.phonetic import NameAlgorithms
from votermatch.storage import InMemoryVoterStore, MatchResultStore, SQLiteVoterStore

# Ages in tests are relative to this year
TEST_YEAR = 2024

_voter_ids = itertools.count(1)


@pytest.fixture
def config():
    """Default options with a fixed current year."""
    return MatchingConfig(current_year=TEST_YEAR, max_workers=2)


@pytest.fixture
def algorithms():
    return NameAlgorithms()


@pytest.fixture
def make_voter():
    """Factory for voter records; every call gets a fresh voter id."""
    def _make(first_name='James', last_name='Carter', **kwargs):
        kwargs.setdefault('voter_id', f"V{next(_voter_ids):06d}")
        kwargs.setdefault('state', 'NY')
        return VoterRecord(first_name=first_name, last_name=last_name, **kwargs)
    return _make


@pytest.fixture
def make_person():
    """Factory for person entries."""
    def _make(id='p1', first_name='Jim', last_name='Carter', **kwargs):
        return PersonEntry(id=id, first_name=first_name, last_name=last_name, **kwargs)
    return _make


@pytest.fixture
def carter_voters(make_voter):
    """The NYC James Carter plus two unrelated Carters upstate."""
    return [
        make_voter('James', 'Carter', city='New York', zip='10001',
                   date_of_birth='1984-03-12', gender='M',
                   vote_history={'VH2024G': 'Y', 'VH2022G': 'A', 'VH2020G': 'E',
                                 'VH2024P': 'Y', 'VH2022P': 'N', 'VH2020P': ''}),
        make_voter('Linda', 'Carter', city='Buffalo', zip='14201',
                   date_of_birth='1951-07-02', gender='F'),
        make_voter('Robert', 'Carter', city='Albany', zip='12203',
                   date_of_birth='1990-11-30', gender='M'),
    ]


@pytest.fixture
def memory_store(carter_voters, algorithms):
    return InMemoryVoterStore(carter_voters, algorithms)


@pytest.fixture
def sqlite_store(tmp_path, carter_voters, algorithms):
    store = SQLiteVoterStore(tmp_path / 'voters.db', pool_size=2, algorithms=algorithms)
    store.import_records(carter_voters)
    yield store
    store.close()


@pytest.fixture
def result_store():
    store = MatchResultStore()
    yield store
    store.close()


@pytest.fixture
def matcher(memory_store, result_store, config, algorithms):
    return VoterMatcher(memory_store, result_store, config, algorithms)
