"""Store interfaces shared by the in-memory and MongoDB backends."""
from abc import ABC, abstractmethod
from typing import List, Optional

from .errors import AlreadyRevealed, InvalidCandidate
from .models import Candidate, ElectionState, VoterRecord


def tally_order(candidates: List[Candidate]) -> List[Candidate]:
    """Highest count first, lowest id breaks ties."""
    return sorted(candidates, key=lambda c: (-c.vote_count, c.id))


class VoterRegistry(ABC):

    @abstractmethod
    def get(self, voter_id: str) -> Optional[VoterRecord]:
        ...

    def has_voted(self, voter_id: str) -> bool:
        record = self.get(voter_id)
        return bool(record and record.has_voted)

    @abstractmethod
    def ensure(self, voter_id: str) -> VoterRecord:
        """Create an idle profile for voter_id unless one exists; return the stored record."""

    @abstractmethod
    def register(self, voter_id: str, candidate_id: int) -> VoterRecord:
        """
        Atomically claim voter_id for candidate_id, leaving the record pending.
        Repeating the claim for the same candidate returns the pending record.
        Raises AlreadyVoted if the voter has a committed vote or a pending
        vote for another candidate.
        """

    @abstractmethod
    def confirm(self, voter_id: str) -> None:
        ...

    @abstractmethod
    def withdraw(self, voter_id: str, candidate_id: Optional[int] = None) -> None:
        """Drop a pending claim; with candidate_id, only a claim for that candidate."""

    @abstractmethod
    def pending(self) -> List[VoterRecord]:
        ...

    @abstractmethod
    def clear_all(self) -> int:
        ...


class TallyStore(ABC):

    @abstractmethod
    def add_candidate(self, name: str, candidate_id: Optional[int] = None) -> Candidate:
        ...

    @abstractmethod
    def get(self, candidate_id: int) -> Optional[Candidate]:
        ...

    def exists(self, candidate_id: int) -> bool:
        return self.get(candidate_id) is not None

    @abstractmethod
    def increment(self, candidate_id: int, token: Optional[str] = None) -> None:
        """
        Add one vote. With a token, repeating the call is a no-op.
        Raises NotFound for an unknown candidate.
        """

    @abstractmethod
    def revert(self, candidate_id: int, token: str) -> bool:
        """Undo the increment applied for token; False if there was none."""

    @abstractmethod
    def was_applied(self, candidate_id: int, token: str) -> bool:
        ...

    @abstractmethod
    def candidates(self) -> List[Candidate]:
        """All candidates in ballot (id) order."""

    def snapshot(self) -> List[Candidate]:
        return tally_order(self.candidates())

    @abstractmethod
    def reset_all(self) -> None:
        ...


class ElectionStateMachine(ABC):
    """OPEN -> WINNER_REVEALED -> (reset) -> OPEN"""

    def __init__(self, tally: TallyStore):
        self._tally = tally

    @abstractmethod
    def state(self) -> ElectionState:
        ...

    def is_open(self) -> bool:
        return self.state().is_open

    def get_winner(self) -> Optional[int]:
        return self.state().winner_id

    def reveal(self, winner_id: int) -> ElectionState:
        if not self._tally.exists(winner_id):
            raise InvalidCandidate(winner_id)
        if not self._mark_revealed(winner_id):
            raise AlreadyRevealed()
        return ElectionState.revealed(winner_id)

    @abstractmethod
    def _mark_revealed(self, winner_id: int) -> bool:
        """Single conditional write OPEN -> revealed; False if already revealed."""

    @abstractmethod
    def reset(self) -> None:
        ...
