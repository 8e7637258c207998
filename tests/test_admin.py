"""Tests for winner reveal, election reset, candidate management and reconciliation."""
import threading

import pytest

from voteledger.errors import AlreadyRevealed, ElectionClosed, NoCandidates, PartialFailure, StoreTimeout
from voteledger.models import ElectionState
from voteledger.storage import MemoryTallyStore, MemoryVoterRegistry

from .conftest import make_memory_ledger


class BrokenResetTally(MemoryTallyStore):
    def reset_all(self):
        raise RuntimeError("disk on fire")


def test_reveal_picks_highest_count(ledger):
    ledger.votes.cast_vote("u1", 1)
    ledger.votes.cast_vote("u2", 2)
    ledger.votes.cast_vote("u3", 1)

    winner = ledger.admin.reveal_winner()

    assert (winner.id, winner.name, winner.vote_count) == (1, "A", 2)
    assert ledger.election.state() == ElectionState(is_open=False, winner_revealed=True, winner_id=1)


def test_reveal_tie_goes_to_lowest_id(ledger):
    ledger.votes.cast_vote("u1", 2)
    ledger.votes.cast_vote("u2", 1)
    assert ledger.admin.reveal_winner().id == 1


def test_second_reveal_fails_and_keeps_winner(ledger):
    ledger.votes.cast_vote("u1", 2)
    ledger.admin.reveal_winner()
    with pytest.raises(AlreadyRevealed):
        ledger.admin.reveal_winner()
    assert ledger.election.get_winner() == 2


def test_reveal_without_candidates():
    ledger = make_memory_ledger()
    with pytest.raises(NoCandidates):
        ledger.admin.reveal_winner()
    assert ledger.election.is_open() is True


def test_reset_returns_to_fresh_election(ledger):
    ledger.votes.cast_vote("u1", 1)
    ledger.votes.cast_vote("u2", 2)
    ledger.admin.reveal_winner()

    report = ledger.admin.reset_election()

    assert report.completed == ["voter_registry", "tally_store", "election_state"]
    assert report.voters_removed == 2
    assert all(c.vote_count == 0 for c in ledger.tally.snapshot())
    assert ledger.registry.has_voted("u1") is False
    assert ledger.registry.has_voted("u2") is False
    assert ledger.election.state() == ElectionState.opened()
    # a new election accepts the same voters again
    ledger.votes.cast_vote("u1", 2)
    assert ledger.tally.get(2).vote_count == 1


def test_reset_partial_failure_reports_completed_steps(caplog):
    ledger = make_memory_ledger(tally=BrokenResetTally(timeout=1.0))
    ledger.seed(["A", "B"])
    ledger.votes.cast_vote("u1", 1)
    ledger.admin.reveal_winner()

    with pytest.raises(PartialFailure) as exc_info:
        ledger.admin.reset_election()

    err = exc_info.value
    assert err.completed == ["voter_registry"]
    assert err.failed == "tally_store"
    assert "manual reconciliation" in str(err).lower()
    assert any(r.levelname == "CRITICAL" for r in caplog.records)
    # stores are left as the failure found them: voters wiped, tally and reveal untouched
    assert ledger.registry.has_voted("u1") is False
    assert ledger.tally.get(1).vote_count == 1
    assert ledger.election.get_winner() == 1


def test_reset_publishes_even_on_failure():
    ledger = make_memory_ledger(tally=BrokenResetTally(timeout=1.0))
    ledger.seed(["A"])
    before = ledger.feed.version
    with pytest.raises(PartialFailure):
        ledger.admin.reset_election()
    assert ledger.feed.version == before + 1


def test_admin_waits_for_votes_in_flight():
    ledger = make_memory_ledger(timeout=0.05)
    ledger.seed(["A"])
    with ledger.lock.shared():
        with pytest.raises(StoreTimeout):
            ledger.admin.reveal_winner()
    assert ledger.election.is_open() is True


def test_votes_wait_for_admin_action():
    ledger = make_memory_ledger(timeout=0.05)
    ledger.seed(["A"])
    entered = threading.Event()
    release = threading.Event()

    def hold():
        with ledger.lock.exclusive():
            entered.set()
            release.wait(1)

    t = threading.Thread(target=hold)
    t.start()
    entered.wait(1)
    try:
        with pytest.raises(StoreTimeout):
            ledger.votes.cast_vote("u1", 1)
    finally:
        release.set()
        t.join()
    ledger.votes.cast_vote("u1", 1)


def test_add_candidate_while_open(ledger):
    c = ledger.admin.add_candidate("C")
    assert c.id == 3
    assert [x.name for x in ledger.tally.candidates()] == ["A", "B", "C"]


def test_add_candidate_after_reveal(ledger):
    ledger.admin.reveal_winner()
    with pytest.raises(ElectionClosed):
        ledger.admin.add_candidate("Late")


def test_reconcile_settles_pending_votes(ledger):
    # u1: counted but never confirmed
    ledger.registry.register("u1", 1)
    ledger.tally.increment(1, token="u1")
    # u2: claimed, increment never landed
    ledger.registry.register("u2", 2)
    # u3: a normal vote
    ledger.votes.cast_vote("u3", 2)

    report = ledger.admin.reconcile()

    assert report.confirmed == ["u1"]
    assert report.withdrawn == ["u2"]
    assert ledger.registry.has_voted("u1") is True
    assert ledger.registry.has_voted("u2") is False
    assert ledger.registry.pending() == []
    assert [(c.id, c.vote_count) for c in ledger.tally.snapshot()] == [(1, 1), (2, 1)]


def test_reconcile_with_nothing_pending(ledger):
    before = ledger.feed.version
    report = ledger.admin.reconcile()
    assert report.confirmed == [] and report.withdrawn == []
    assert ledger.feed.version == before


def test_reset_failure_in_first_step():
    class BrokenRegistry(MemoryVoterRegistry):
        def clear_all(self):
            raise StoreTimeout("voter registry reset")

    ledger = make_memory_ledger(registry=BrokenRegistry(timeout=1.0))
    ledger.seed(["A"])
    with pytest.raises(PartialFailure) as exc_info:
        ledger.admin.reset_election()
    assert exc_info.value.completed == []
    assert exc_info.value.failed == "voter_registry"
