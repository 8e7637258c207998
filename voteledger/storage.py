# voteledger/storage.py
# In-process stores. Replace with storage_mongo when running more than one worker.
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Set

from .errors import AlreadyVoted, NotFound, StoreTimeout
from .models import Candidate, ElectionState, VoterRecord
from .stores import ElectionStateMachine, TallyStore, VoterRegistry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0


@contextmanager
def _locked(lock, timeout: float, operation: str):
    if not lock.acquire(timeout=timeout):
        raise StoreTimeout(operation)
    try:
        yield
    finally:
        lock.release()


class MemoryVoterRegistry(VoterRegistry):
    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self._timeout = timeout
        self._lock = threading.Lock()
        self._records: Dict[str, VoterRecord] = {}

    def get(self, voter_id: str) -> Optional[VoterRecord]:
        with _locked(self._lock, self._timeout, "voter lookup"):
            record = self._records.get(voter_id)
            return record.model_copy() if record else None

    def ensure(self, voter_id: str) -> VoterRecord:
        with _locked(self._lock, self._timeout, "voter profile creation"):
            record = self._records.setdefault(voter_id, VoterRecord(voter_id=voter_id))
            return record.model_copy()

    def register(self, voter_id: str, candidate_id: int) -> VoterRecord:
        # check and claim under one lock hold
        with _locked(self._lock, self._timeout, "voter registration"):
            record = self._records.get(voter_id)
            if record is not None and record.pending and record.voted_for == candidate_id:
                return record.model_copy()
            if record is not None and (record.has_voted or record.pending):
                raise AlreadyVoted(voter_id)
            record = VoterRecord(voter_id=voter_id, voted_for=candidate_id, pending=True)
            self._records[voter_id] = record
            return record.model_copy()

    def confirm(self, voter_id: str) -> None:
        with _locked(self._lock, self._timeout, "vote confirmation"):
            record = self._records.get(voter_id)
            if record is not None and record.pending:
                record.pending = False
                record.has_voted = True

    def withdraw(self, voter_id: str, candidate_id: Optional[int] = None) -> None:
        with _locked(self._lock, self._timeout, "vote withdrawal"):
            record = self._records.get(voter_id)
            if record is None or not record.pending:
                return
            if candidate_id is None or record.voted_for == candidate_id:
                record.pending = False
                record.voted_for = None

    def pending(self) -> List[VoterRecord]:
        with _locked(self._lock, self._timeout, "pending voter scan"):
            return [r.model_copy() for r in self._records.values() if r.pending]

    def clear_all(self) -> int:
        with _locked(self._lock, self._timeout, "voter registry reset"):
            removed = len(self._records)
            self._records.clear()
        logger.info(f"Voter registry cleared ({removed} records)")
        return removed


class _Row:
    """One candidate with its own lock so tallies of different candidates never contend."""

    def __init__(self, candidate: Candidate):
        self.candidate = candidate
        self.applied: Set[str] = set()
        self.lock = threading.Lock()


class MemoryTallyStore(TallyStore):
    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self._timeout = timeout
        self._lock = threading.Lock()  # guards the row table, not the counts
        self._rows: Dict[int, _Row] = {}

    def _row(self, candidate_id: int) -> _Row:
        with _locked(self._lock, self._timeout, "candidate lookup"):
            row = self._rows.get(candidate_id)
        if row is None:
            raise NotFound(candidate_id)
        return row

    def add_candidate(self, name: str, candidate_id: Optional[int] = None) -> Candidate:
        with _locked(self._lock, self._timeout, "candidate creation"):
            if candidate_id is None:
                candidate_id = max(self._rows, default=0) + 1
            if candidate_id in self._rows:
                raise ValueError(f"Candidate id {candidate_id} already exists")
            candidate = Candidate(id=candidate_id, name=name)
            self._rows[candidate_id] = _Row(candidate)
        logger.info(f"Candidate {candidate_id} ({name}) added")
        return candidate.model_copy()

    def get(self, candidate_id: int) -> Optional[Candidate]:
        try:
            row = self._row(candidate_id)
        except NotFound:
            return None
        with _locked(row.lock, self._timeout, "candidate read"):
            return row.candidate.model_copy()

    def increment(self, candidate_id: int, token: Optional[str] = None) -> None:
        row = self._row(candidate_id)
        with _locked(row.lock, self._timeout, "tally increment"):
            if token is not None:
                if token in row.applied:
                    return
                row.applied.add(token)
            row.candidate.vote_count += 1

    def revert(self, candidate_id: int, token: str) -> bool:
        row = self._row(candidate_id)
        with _locked(row.lock, self._timeout, "tally revert"):
            if token not in row.applied:
                return False
            row.applied.discard(token)
            row.candidate.vote_count -= 1
            return True

    def was_applied(self, candidate_id: int, token: str) -> bool:
        row = self._row(candidate_id)
        with _locked(row.lock, self._timeout, "tally token lookup"):
            return token in row.applied

    def candidates(self) -> List[Candidate]:
        with _locked(self._lock, self._timeout, "tally snapshot"):
            rows = sorted(self._rows.values(), key=lambda r: r.candidate.id)
        result = []
        for row in rows:
            with _locked(row.lock, self._timeout, "tally snapshot"):
                result.append(row.candidate.model_copy())
        return result

    def reset_all(self) -> None:
        with _locked(self._lock, self._timeout, "tally reset"):
            rows = list(self._rows.values())
        for row in rows:
            with _locked(row.lock, self._timeout, "tally reset"):
                row.candidate.vote_count = 0
                row.applied.clear()
        logger.info(f"Tally reset for {len(rows)} candidates")


class MemoryElectionState(ElectionStateMachine):
    def __init__(self, tally: TallyStore, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(tally)
        self._timeout = timeout
        self._lock = threading.Lock()
        self._state = ElectionState.opened()

    def state(self) -> ElectionState:
        with _locked(self._lock, self._timeout, "election state read"):
            return self._state.model_copy()

    def _mark_revealed(self, winner_id: int) -> bool:
        with _locked(self._lock, self._timeout, "winner reveal"):
            if self._state.winner_revealed:
                return False
            self._state = ElectionState.revealed(winner_id)
            return True

    def reset(self) -> None:
        with _locked(self._lock, self._timeout, "election state reset"):
            self._state = ElectionState.opened()
