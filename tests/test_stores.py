"""Tests for the voter registry, tally store and election state machine, on both backends."""
import uuid

import mongomock
import pytest
from pymongo.errors import NetworkTimeout

from voteledger.errors import AlreadyRevealed, AlreadyVoted, InvalidCandidate, NotFound, StoreTimeout
from voteledger.ledger import VoteLedger
from voteledger.models import ElectionPhase, ElectionState
from voteledger.storage import MemoryTallyStore, MemoryVoterRegistry
from voteledger.storage_mongo import MongoStorage


# ── Voter registry ───────────────────────────────────────────────────────────

def test_unknown_voter_has_not_voted(ledger):
    assert ledger.registry.has_voted("nobody") is False
    assert ledger.registry.get("nobody") is None


def test_ensure_creates_idle_profile_once(ledger):
    first = ledger.registry.ensure("u1")
    again = ledger.registry.ensure("u1")
    assert first.voter_id == "u1"
    assert first.has_voted is False
    assert again == first


def test_register_then_confirm(ledger):
    record = ledger.registry.register("u1", 1)
    assert record.pending is True
    assert ledger.registry.has_voted("u1") is False  # pending is not yet voted
    ledger.registry.confirm("u1")
    stored = ledger.registry.get("u1")
    assert stored.has_voted is True
    assert stored.voted_for == 1
    assert stored.pending is False


def test_register_twice_fails(ledger):
    ledger.registry.register("u1", 1)
    with pytest.raises(AlreadyVoted):
        ledger.registry.register("u1", 2)
    ledger.registry.confirm("u1")
    with pytest.raises(AlreadyVoted):
        ledger.registry.register("u1", 2)


def test_register_again_for_same_candidate_returns_pending_claim(ledger):
    ledger.registry.register("u1", 1)
    again = ledger.registry.register("u1", 1)
    assert again.pending is True
    assert again.voted_for == 1
    assert [r.voter_id for r in ledger.registry.pending()] == ["u1"]


def test_register_after_confirm_fails_even_for_same_candidate(ledger):
    ledger.registry.register("u1", 1)
    ledger.registry.confirm("u1")
    with pytest.raises(AlreadyVoted):
        ledger.registry.register("u1", 1)


def test_withdraw_for_other_candidate_keeps_claim(ledger):
    ledger.registry.register("u1", 1)
    ledger.registry.withdraw("u1", candidate_id=2)
    assert ledger.registry.get("u1").pending is True
    ledger.registry.withdraw("u1", candidate_id=1)
    assert ledger.registry.get("u1").pending is False


def test_register_claims_existing_idle_profile(ledger):
    ledger.registry.ensure("u1")
    ledger.registry.register("u1", 2)
    assert ledger.registry.get("u1").voted_for == 2


def test_withdraw_frees_the_voter(ledger):
    ledger.registry.register("u1", 1)
    ledger.registry.withdraw("u1")
    record = ledger.registry.get("u1")
    assert record.pending is False
    assert record.voted_for is None
    ledger.registry.register("u1", 2)


def test_pending_lists_only_in_flight_votes(ledger):
    ledger.registry.register("u1", 1)
    ledger.registry.register("u2", 2)
    ledger.registry.confirm("u2")
    ledger.registry.ensure("u3")
    assert [r.voter_id for r in ledger.registry.pending()] == ["u1"]


def test_clear_all(ledger):
    ledger.registry.register("u1", 1)
    ledger.registry.confirm("u1")
    ledger.registry.ensure("u2")
    assert ledger.registry.clear_all() == 2
    assert ledger.registry.has_voted("u1") is False
    assert ledger.registry.get("u2") is None


# ── Tally store ──────────────────────────────────────────────────────────────

def test_seeded_candidates_get_sequential_ids(ledger):
    assert [(c.id, c.name, c.vote_count) for c in ledger.tally.candidates()] == [(1, "A", 0), (2, "B", 0)]


def test_seed_leaves_existing_ballot_alone(ledger):
    assert ledger.seed(["X", "Y", "Z"]) == []
    assert len(ledger.tally.candidates()) == 2


def test_two_workers_seeding_one_database_share_one_ballot(monkeypatch):
    db = mongomock.MongoClient()[f"seed_race_{uuid.uuid4().hex}"]
    first = MongoStorage(db)
    second = MongoStorage(db)
    ledgers = [
        VoteLedger(s.registry, s.tally, s.election, storage=s, timeout=1.0, backoff=0) for s in (first, second)
    ]

    # both workers found the database empty before either one wrote
    monkeypatch.setattr(second.tally, "candidates", lambda: [])
    ledgers[0].seed(["A", "B"])
    assert ledgers[1].seed(["A", "B"]) == []
    monkeypatch.undo()

    assert [(c.id, c.name) for c in second.tally.candidates()] == [(1, "A"), (2, "B")]
    assert first.tally.add_candidate("C").id == 3


def test_add_candidate_continues_ids(ledger):
    c = ledger.tally.add_candidate("C")
    assert c.id == 3
    with pytest.raises(ValueError, match="already exists"):
        ledger.tally.add_candidate("Dup", candidate_id=3)


def test_increment_and_snapshot_order(ledger):
    ledger.tally.add_candidate("C")
    ledger.tally.increment(2)
    ledger.tally.increment(3)
    ledger.tally.increment(3)
    snapshot = ledger.tally.snapshot()
    # C leads, then B, then A
    assert [(c.id, c.vote_count) for c in snapshot] == [(3, 2), (2, 1), (1, 0)]


def test_snapshot_ties_broken_by_lowest_id(ledger):
    ledger.tally.increment(2)
    ledger.tally.increment(1)
    assert [c.id for c in ledger.tally.snapshot()] == [1, 2]


def test_increment_unknown_candidate(ledger):
    with pytest.raises(NotFound):
        ledger.tally.increment(99)
    with pytest.raises(NotFound):
        ledger.tally.increment(99, token="u1")


def test_increment_with_token_is_idempotent(ledger):
    ledger.tally.increment(1, token="u1")
    ledger.tally.increment(1, token="u1")
    assert ledger.tally.get(1).vote_count == 1
    assert ledger.tally.was_applied(1, "u1") is True
    assert ledger.tally.was_applied(2, "u1") is False


def test_revert_only_undoes_applied_tokens(ledger):
    ledger.tally.increment(1, token="u1")
    assert ledger.tally.revert(1, "u2") is False
    assert ledger.tally.revert(1, "u1") is True
    assert ledger.tally.revert(1, "u1") is False
    assert ledger.tally.get(1).vote_count == 0


def test_reset_all(ledger):
    ledger.tally.increment(1, token="u1")
    ledger.tally.increment(2)
    ledger.tally.reset_all()
    assert all(c.vote_count == 0 for c in ledger.tally.snapshot())
    # tokens are forgotten too, so the same voter can be counted in the next election
    ledger.tally.increment(1, token="u1")
    assert ledger.tally.get(1).vote_count == 1


# ── Election state machine ───────────────────────────────────────────────────

def test_election_starts_open(ledger):
    assert ledger.election.state() == ElectionState(is_open=True, winner_revealed=False, winner_id=None)
    assert ledger.election.is_open() is True
    assert ledger.election.get_winner() is None
    assert ledger.election.state().phase == ElectionPhase.OPEN


def test_reveal_closes_election(ledger):
    state = ledger.election.reveal(2)
    assert state == ElectionState(is_open=False, winner_revealed=True, winner_id=2)
    assert ledger.election.state() == state
    assert state.phase == ElectionPhase.WINNER_REVEALED
    assert state.model_dump()["phase"] == "winner_revealed"


def test_reveal_twice_keeps_first_winner(ledger):
    ledger.election.reveal(2)
    with pytest.raises(AlreadyRevealed):
        ledger.election.reveal(1)
    assert ledger.election.get_winner() == 2


def test_reveal_unknown_candidate(ledger):
    with pytest.raises(InvalidCandidate):
        ledger.election.reveal(99)
    assert ledger.election.is_open() is True


def test_reset_reopens(ledger):
    ledger.election.reveal(1)
    ledger.election.reset()
    assert ledger.election.state() == ElectionState.opened()
    ledger.election.reset()
    assert ledger.election.is_open() is True


def test_election_state_rejects_winner_without_reveal():
    with pytest.raises(ValueError):
        ElectionState(is_open=True, winner_revealed=False, winner_id=1)


# ── Timeouts ─────────────────────────────────────────────────────────────────

def test_memory_lock_timeout_surfaces_as_store_timeout():
    registry = MemoryVoterRegistry(timeout=0.01)
    registry._lock.acquire()
    try:
        with pytest.raises(StoreTimeout):
            registry.register("u1", 1)
    finally:
        registry._lock.release()


def test_memory_tally_locks_are_per_candidate():
    tally = MemoryTallyStore(timeout=0.01)
    tally.add_candidate("A")
    tally.add_candidate("B")
    row_a = tally._rows[1]
    row_a.lock.acquire()
    try:
        tally.increment(2)
        with pytest.raises(StoreTimeout):
            tally.increment(1)
    finally:
        row_a.lock.release()
    assert tally.get(2).vote_count == 1


def test_mongo_network_timeout_surfaces_as_store_timeout(monkeypatch):
    storage = MongoStorage(mongomock.MongoClient()["timeouts_test"])

    def slow(*args, **kwargs):
        raise NetworkTimeout("timed out")

    monkeypatch.setattr(storage.registry.collection, "find_one", slow)
    with pytest.raises(StoreTimeout) as exc_info:
        storage.registry.get("u1")
    assert exc_info.value.retryable is True
