"""Tests for the VoterMatcher batch engine."""

import threading
import unittest

import pytest

from votermatch.cancellation import CancellationToken
from votermatch.config import MatchingConfig
from votermatch.core.models import PersonEntry, VoterRecord
from votermatch.core.results import MatchStatus
from votermatch.exceptions import (
    MatchCancelledError,
    MatchingUnavailableError,
    UnknownPersonError,
)
from votermatch.matching import VoterMatcher
from votermatch.segments import Segment
from votermatch.storage import InMemoryVoterStore, MatchResultStore
from votermatch.storage.results import AuditAction

TEST_YEAR = 2024


class CancellingStore(InMemoryVoterStore):
    """Store that trips a token on its n-th last-name lookup."""

    def __init__(self, records, token, trip_on=2):
        super().__init__(records)
        self.token = token
        self.trip_on = trip_on
        self.calls = 0
        self._calls_lock = threading.Lock()

    def find_by_last_name(self, *args, **kwargs):
        records = super().find_by_last_name(*args, **kwargs)
        with self._calls_lock:
            self.calls += 1
            if self.calls == self.trip_on:
                self.token.cancel()
        return records


class BlockingStore(InMemoryVoterStore):
    """Store whose last-name lookup waits until the test releases it."""

    def __init__(self, records):
        super().__init__(records)
        self.entered = threading.Event()
        self.release = threading.Event()

    def find_by_last_name(self, *args, **kwargs):
        self.entered.set()
        self.release.wait(timeout=10)
        return super().find_by_last_name(*args, **kwargs)


class UnreachableStore(InMemoryVoterStore):
    """Store whose database is down."""

    def ping(self):
        raise MatchingUnavailableError("voter database is unreachable")


class BrokenQueryStore(InMemoryVoterStore):
    """Store that answers pings but fails every lookup."""

    def find_by_last_name(self, *args, **kwargs):
        raise MatchingUnavailableError("query failed")


@pytest.fixture
def jim(make_person):
    return make_person(city='New York', zip='10001', age=40, gender='M')


class TestMatch:
    """Tests for matching batches."""

    def test_nickname_confirmed(self, matcher, jim):
        """Test that Jim Carter of NYC is matched to James Carter."""
        [result] = matcher.match([jim], 'NY')

        assert result.status is MatchStatus.CONFIRMED
        assert result.best_match.first_name == 'James'
        assert result.best_match.city == 'New York'
        assert 'nickname' in result.candidates[0].matched_fields
        assert 'exact-name' in result.candidates[0].matched_fields
        assert result.vote_score == pytest.approx(4 / 6)
        assert result.segment is Segment.SOMETIMES_VOTER

    def test_neighborhood_without_zip(self, matcher, make_person):
        """Test that Jim Carter of Queens matches James Carter of New York."""
        entry = make_person(city='Queens', age=40, gender='M')

        [result] = matcher.match([entry], 'NY')

        assert result.status is MatchStatus.CONFIRMED
        assert result.best_match.first_name == 'James'
        assert result.best_match.city == 'New York'
        assert result.candidates[0].breakdown.geography == pytest.approx(0.95)
        assert 'city' in result.candidates[0].matched_fields

    def test_exact_zip_without_city(self, make_voter, make_person, result_store, config):
        """Test that a shared zip outside any metro still allows auto-confirm."""
        voters = [make_voter('James', 'Carter', zip='59001', date_of_birth='1984-05-01')]
        matcher = VoterMatcher(InMemoryVoterStore(voters), result_store, config)

        [result] = matcher.match([make_person(first_name='James', zip='59001', age=40)], 'NY')

        assert result.status is MatchStatus.CONFIRMED
        assert result.candidates[0].breakdown.geography == pytest.approx(0.85)

    def test_identical_record_scores_one(self, matcher, make_person):
        entry = make_person(first_name='James', city='New York', zip='10001',
                            age=TEST_YEAR - 1984, gender='M')
        [result] = matcher.match([entry], 'NY')

        assert result.status is MatchStatus.CONFIRMED
        assert result.candidates[0].score == pytest.approx(1.0)

    def test_best_match_hides_private_fields(self, matcher, jim):
        [result] = matcher.match([jim], 'NY')
        data = result.to_dict()['best_match']

        assert 'voter_id' not in data
        assert 'date_of_birth' not in data
        assert data['birth_year'] == 1984

    def test_results_in_input_order(self, matcher, make_person):
        people = [make_person(id=f"p{i}", first_name=name)
                  for i, name in enumerate(['Linda', 'Robert', 'James', 'Zed'])]

        results = matcher.match(people, 'NY')

        assert [r.person_entry_id for r in results] == ['p0', 'p1', 'p2', 'p3']

    def test_rematch_is_idempotent(self, matcher, jim):
        first = matcher.match([jim], 'NY')
        second = matcher.match([jim], 'NY')
        assert first == second

    def test_empty_batch(self, matcher):
        assert matcher.match([], 'NY') == []

    def test_no_candidates_unmatched(self, matcher, make_person):
        [result] = matcher.match([make_person(first_name='Ann', last_name='Okonkwo')], 'NY')

        assert result.status is MatchStatus.UNMATCHED
        assert result.candidates == ()
        assert result.segment is None

    def test_other_state_unmatched(self, matcher, jim):
        [result] = matcher.match([jim], 'PA')
        assert result.status is MatchStatus.UNMATCHED

    def test_invalid_entry_does_not_stop_batch(self, matcher, jim, make_person):
        """Test that an entry without a last name gets an error result."""
        bad = make_person(id='p2', last_name='  ')

        results = matcher.match([bad, jim], 'NY')

        assert results[0].status is MatchStatus.ERROR
        assert results[0].error == 'missing last name'
        assert results[1].status is MatchStatus.CONFIRMED

    def test_missing_both_names(self, matcher, make_person):
        [result] = matcher.match([make_person(first_name='', last_name='')], 'NY')
        assert result.error == 'missing first name and last name'

    def test_equal_records_ambiguous(self, make_voter, make_person, result_store, config):
        """Test that two indistinguishable records are left for the user to pick."""
        voters = [
            make_voter('James', 'Carter', city='New York', zip='10001',
                       residential_address='9 Bank St', date_of_birth='1984-01-01'),
            make_voter('James', 'Carter', city='New York', zip='10001',
                       residential_address='1 Ash St', date_of_birth='1984-01-01'),
        ]
        matcher = VoterMatcher(InMemoryVoterStore(voters), result_store, config)

        [result] = matcher.match([make_person(city='New York', zip='10001', age=40)], 'NY')

        assert result.status is MatchStatus.AMBIGUOUS
        assert result.best_match is None
        assert [c.record.residential_address for c in result.candidates] == ['1 Ash St', '9 Bank St']

    def test_candidates_truncated(self, make_voter, make_person, result_store, config):
        voters = [make_voter('James', 'Carter', city='New York', zip='10001',
                             residential_address=f"{n} Main St") for n in range(1, 6)]
        matcher = VoterMatcher(InMemoryVoterStore(voters), result_store, config)

        [result] = matcher.match([make_person(city='New York', zip='10001')], 'NY')

        assert len(result.candidates) == config.max_candidates_per_person
        scores = [c.score for c in result.candidates]
        assert scores == sorted(scores, reverse=True)

    def test_sqlite_store(self, sqlite_store, result_store, config, jim):
        matcher = VoterMatcher(sqlite_store, result_store, config)
        [result] = matcher.match([jim], 'NY')
        assert result.best_match.first_name == 'James'

    def test_match_one(self, matcher, jim):
        result = matcher.match_one(jim, 'NY')
        assert matcher.get_result(jim.id) == result


class TestCancellation:
    """Tests for cancelling a batch."""

    def test_cancelled_before_start(self, matcher, jim, make_person):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(MatchCancelledError) as exc_info:
            matcher.match([jim, make_person(id='p2')], 'NY', token)

        assert exc_info.value.completed == []
        assert matcher.get_result(jim.id) is None

    def test_partial_results_kept(self, carter_voters, make_person, result_store):
        """Test that entries finished before the cancel are returned and stored."""
        token = CancellationToken()
        store = CancellingStore(carter_voters, token)
        config = MatchingConfig(current_year=TEST_YEAR, max_workers=1)
        matcher = VoterMatcher(store, result_store, config)
        people = [make_person(id=f"p{i}") for i in range(3)]

        with pytest.raises(MatchCancelledError) as exc_info:
            matcher.match(people, 'NY', token)

        completed = exc_info.value.completed
        assert [r.person_entry_id for r in completed] == ['p0']
        assert result_store.get('p0') == completed[0]
        assert result_store.get('p2') is None

    def test_timeout(self, matcher, jim):
        token = CancellationToken(timeout=0)
        with pytest.raises(MatchCancelledError):
            matcher.match([jim], 'NY', token)


class TestStoreFailures:
    """Tests for an unavailable reference store."""

    def test_ping_failure(self, carter_voters, result_store, config, jim):
        matcher = VoterMatcher(UnreachableStore(carter_voters), result_store, config)

        with pytest.raises(MatchingUnavailableError):
            matcher.match([jim], 'NY')
        assert result_store.all() == []

    def test_query_failure_aborts_batch(self, carter_voters, result_store, config, jim):
        matcher = VoterMatcher(BrokenQueryStore(carter_voters), result_store, config)

        with pytest.raises(MatchingUnavailableError):
            matcher.match([jim], 'NY')


class TestManualDecisions:
    """Tests for confirm_match and reject_match."""

    def test_confirm_survives_rematch(self, matcher, jim, carter_voters):
        matcher.match([jim], 'NY')
        robert = carter_voters[2].to_safe()

        confirmed = matcher.confirm_match(jim.id, robert)
        rematched = matcher.match([jim], 'NY')[0]

        assert confirmed.user_confirmed
        assert rematched == confirmed
        assert rematched.best_match.first_name == 'Robert'
        actions = [e.action for e in matcher.results.history(jim.id)]
        assert actions == [AuditAction.AUTO.value, AuditAction.CONFIRM.value,
                           AuditAction.AUTO_SKIPPED.value]

    def test_confirm_during_running_match(self, carter_voters, result_store, config, jim):
        """Test that a confirm made while a match is in flight is kept."""
        store = BlockingStore(carter_voters)
        matcher = VoterMatcher(store, result_store, config)
        matcher.submit([jim])
        outcome = []

        worker = threading.Thread(target=lambda: outcome.extend(matcher.match([jim], 'NY')))
        worker.start()
        try:
            assert store.entered.wait(timeout=10)
            confirmed = matcher.confirm_match(jim.id, carter_voters[2].to_safe())
        finally:
            store.release.set()
            worker.join(timeout=10)

        assert outcome == [confirmed]
        assert result_store.get(jim.id).user_confirmed
        assert result_store.get(jim.id).best_match.first_name == 'Robert'
        assert result_store.history(jim.id)[-1].action == AuditAction.AUTO_SKIPPED.value

    def test_reject_during_running_match(self, carter_voters, result_store, config, jim):
        store = BlockingStore(carter_voters)
        matcher = VoterMatcher(store, result_store, config)
        matcher.submit([jim])
        outcome = []

        worker = threading.Thread(target=lambda: outcome.extend(matcher.match([jim], 'NY')))
        worker.start()
        try:
            assert store.entered.wait(timeout=10)
            rejected = matcher.reject_match(jim.id)
        finally:
            store.release.set()
            worker.join(timeout=10)

        assert outcome == [rejected]
        assert result_store.get(jim.id).status is MatchStatus.UNMATCHED

    def test_changed_entry_replaces_confirm(self, matcher, jim, carter_voters):
        matcher.match([jim], 'NY')
        matcher.confirm_match(jim.id, carter_voters[2].to_safe())

        edited = PersonEntry(**{**jim.__dict__, 'age': 41})
        [result] = matcher.match([edited], 'NY')

        assert not result.user_confirmed
        assert result.best_match.first_name == 'James'

    def test_confirm_candidate(self, matcher, jim):
        [result] = matcher.match([jim], 'NY')
        confirmed = matcher.confirm_match(jim.id, result.candidates[0])

        assert confirmed.best_match == result.candidates[0].record
        assert confirmed.candidates == result.candidates

    def test_reject(self, matcher, jim):
        [result] = matcher.match([jim], 'NY')

        rejected = matcher.reject_match(jim.id)

        assert rejected.status is MatchStatus.UNMATCHED
        assert rejected.is_manual
        assert rejected.candidates == result.candidates
        assert matcher.match([jim], 'NY')[0] == rejected

    def test_unknown_person(self, matcher, carter_voters):
        with pytest.raises(UnknownPersonError):
            matcher.confirm_match('nobody', carter_voters[0].to_safe())
        with pytest.raises(UnknownPersonError):
            matcher.reject_match('nobody')

    def test_confirm_pending(self, matcher, jim, carter_voters):
        """Test that a submitted but unmatched entry can be confirmed."""
        matcher.submit([jim])
        result = matcher.confirm_match(jim.id, carter_voters[0].to_safe())
        assert result.status is MatchStatus.CONFIRMED


class TestLifecycle(unittest.TestCase):
    """Tests for submit, remove_person and segments."""

    def setUp(self):
        self.voters = [
            VoterRecord('V1', 'Ada', 'Lovelace', date_of_birth='1980-01-01', city='Albany',
                        zip='12203', state='NY',
                        vote_history={f: 'Y' for f in ('VH2024G', 'VH2022G', 'VH2020G',
                                                       'VH2024P', 'VH2022P')}),
            VoterRecord('V2', 'Alan', 'Turing', date_of_birth='1970-01-01', city='Albany',
                        zip='12203', state='NY', vote_history={'VH2024G': 'N'}),
        ]
        self.results = MatchResultStore()
        self.matcher = VoterMatcher(InMemoryVoterStore(self.voters), self.results,
                                    MatchingConfig(current_year=TEST_YEAR))
        self.people = [
            PersonEntry('a', 'Ada', 'Lovelace', city='Albany', zip='12203', age=44),
            PersonEntry('b', 'Alan', 'Turing', city='Albany', zip='12203', age=54),
            PersonEntry('c', 'Grace', 'Hopper'),
        ]

    def tearDown(self):
        self.results.close()

    def test_submit_creates_pending(self):
        results = self.matcher.submit(self.people)

        self.assertEqual([r.status for r in results], [MatchStatus.PENDING] * 3)
        self.assertEqual(self.matcher.get_result('a').status, MatchStatus.PENDING)

    def test_submit_keeps_existing(self):
        self.matcher.match(self.people[:1], 'NY')
        [result] = self.matcher.submit(self.people[:1])
        self.assertEqual(result.status, MatchStatus.CONFIRMED)

    def test_remove_person(self):
        self.matcher.submit(self.people)

        self.assertTrue(self.matcher.remove_person('a'))
        self.assertIsNone(self.matcher.get_result('a'))
        self.assertFalse(self.matcher.remove_person('a'))

    def test_segments(self):
        self.matcher.match(self.people, 'NY')

        groups = self.matcher.segments()

        self.assertEqual([r.person_entry_id for r in groups['super_voters']], ['a'])
        self.assertEqual([r.person_entry_id for r in groups['rarely_voters']], ['b'])
        self.assertEqual([r.person_entry_id for r in groups['unmatched']], ['c'])
        self.assertEqual(groups['total_entered'], 3)
        self.assertEqual(groups['total_matched'], 2)
