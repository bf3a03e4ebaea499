"""Tests for the match-result store and its audit log."""

import pytest

from votermatch.core.models import SafeVoterRecord
from votermatch.core.results import (
    Confirmed,
    MatchCandidate,
    MatchResult,
    MatchStatus,
    Unmatched,
)
from votermatch.exceptions import UnknownPersonError
from votermatch.storage import MatchResultStore
from votermatch.storage.results import AuditAction


@pytest.fixture
def record():
    return SafeVoterRecord('James', 'Carter', birth_year=1984, city='New York', zip='10001',
                           vote_history={'VH2024G': 'Y'})


@pytest.fixture
def automatic(record):
    candidate = MatchCandidate(record, 0.97, frozenset({'exact-name'}))
    return MatchResult('p1', Confirmed(record, (candidate,)), 'fp-1')


def manual_confirm(result):
    return MatchResult(result.person_entry_id,
                       Confirmed(result.best_match, result.candidates, user_confirmed=True),
                       result.entry_fingerprint)


class TestMatchResultStore:
    """Tests for MatchResultStore."""

    def test_create_pending(self, result_store):
        result = result_store.create_pending('p1', 'fp-1')

        assert result.status is MatchStatus.PENDING
        assert result_store.get('p1') == result
        assert 'p1' in result_store
        assert 'p2' not in result_store

    def test_create_pending_keeps_existing(self, result_store, automatic):
        result_store.save_automatic(automatic)
        assert result_store.create_pending('p1', 'fp-1') == automatic

    def test_save_automatic(self, result_store, automatic):
        stored = result_store.save_automatic(automatic)

        assert stored == automatic
        assert result_store.get('p1') == automatic
        assert result_store.get('p1').vote_score == pytest.approx(1 / 6)

    def test_manual_result_dominates(self, result_store, automatic):
        result_store.save_automatic(automatic)
        manual = result_store.save_manual(manual_confirm(automatic), AuditAction.CONFIRM)

        replacement = MatchResult('p1', Unmatched(), 'fp-1')
        kept = result_store.save_automatic(replacement)

        assert kept == manual
        assert result_store.get('p1').user_confirmed

    def test_changed_fingerprint_replaces_manual(self, result_store, automatic):
        result_store.save_automatic(automatic)
        result_store.save_manual(manual_confirm(automatic), AuditAction.CONFIRM)

        replacement = MatchResult('p1', Unmatched(), 'fp-2')
        assert result_store.save_automatic(replacement) == replacement
        assert result_store.get('p1').status is MatchStatus.UNMATCHED

    def test_rejection_dominates(self, result_store, automatic):
        result_store.save_automatic(automatic)
        rejected = MatchResult('p1', Unmatched(automatic.candidates, user_rejected=True), 'fp-1')
        result_store.save_manual(rejected, AuditAction.REJECT)

        assert result_store.save_automatic(automatic) == rejected

    def test_save_manual_unknown_person(self, result_store, automatic):
        with pytest.raises(UnknownPersonError):
            result_store.save_manual(manual_confirm(automatic), AuditAction.CONFIRM)

    def test_remove(self, result_store, automatic):
        result_store.save_automatic(automatic)

        assert result_store.remove('p1')
        assert result_store.get('p1') is None
        assert not result_store.remove('p1')

    def test_all_ordered_by_person(self, result_store):
        for person_id in ('p3', 'p1', 'p2'):
            result_store.create_pending(person_id)
        assert [r.person_entry_id for r in result_store.all()] == ['p1', 'p2', 'p3']

    def test_history(self, result_store, automatic):
        result_store.create_pending('p1', 'fp-1')
        result_store.save_automatic(automatic)
        result_store.save_manual(manual_confirm(automatic), AuditAction.CONFIRM)
        result_store.save_automatic(automatic)
        result_store.remove('p1')

        history = result_store.history('p1')

        assert [e.action for e in history] == ['submit', 'auto', 'confirm', 'auto_skipped', 'remove']
        assert history[1].status == 'confirmed'
        assert history[1].metadata == {'candidates': 1, 'best_match': 'James Carter'}
        assert history[-1].status is None

    def test_persists_to_file(self, tmp_path, automatic):
        path = tmp_path / 'results.db'
        with MatchResultStore(path) as store:
            store.save_automatic(automatic)

        with MatchResultStore(path) as store:
            assert store.get('p1') == automatic
            assert len(store.history('p1')) == 1
