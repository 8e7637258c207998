import logging
import time
from typing import Callable, TypeVar

from .errors import ElectionClosed, StoreTimeout, UnknownCandidate
from .feed import NotificationFeed
from .locks import ElectionLock, VoterLocks
from .models import VoteReceipt, VoterStatus
from .stores import ElectionStateMachine, TallyStore, VoterRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retries(operation: str, fn: Callable[[], T], attempts: int, backoff: float) -> T:
    """Call fn, retrying StoreTimeout with linear backoff; the last timeout propagates."""
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except StoreTimeout:
            if attempt == attempts:
                raise
            logger.warning(f"{operation} timed out (attempt {attempt}/{attempts}), retrying")
            time.sleep(backoff * attempt)


class VoteService:
    def __init__(
        self,
        registry: VoterRegistry,
        tally: TallyStore,
        election: ElectionStateMachine,
        feed: NotificationFeed,
        lock: ElectionLock,
        voter_locks: VoterLocks,
        retries: int = 3,
        backoff: float = 0.1,
    ):
        self._registry = registry
        self._tally = tally
        self._election = election
        self._feed = feed
        self._lock = lock
        self._voter_locks = voter_locks
        self._retries = retries
        self._backoff = backoff

    def _retry(self, operation: str, fn: Callable[[], T]) -> T:
        return with_retries(operation, fn, self._retries, self._backoff)

    def cast_vote(self, voter_id: str, candidate_id: int) -> VoteReceipt:
        """
        Record one vote for candidate_id on behalf of voter_id.

        The voter is claimed (pending) first, then the tally is incremented
        with the voter id as idempotency token, then the claim is confirmed.
        If the claim or the increment cannot be applied the claim is rolled
        back, so a voter is never reported as voted without being counted.
        Every step is safe to repeat: calling again with the same ballot
        after a StoreTimeout finishes the earlier attempt instead of failing.

        Raises ElectionClosed, UnknownCandidate, AlreadyVoted or StoreTimeout.
        """
        with self._lock.shared(), self._voter_locks.hold(voter_id):
            if not self._election.is_open():
                raise ElectionClosed()
            candidate = self._tally.get(candidate_id)
            if candidate is None:
                raise UnknownCandidate(candidate_id)

            try:
                self._retry("voter registration", lambda: self._registry.register(voter_id, candidate_id))
            except StoreTimeout:
                self._roll_back(voter_id, candidate_id)
                raise
            try:
                self._retry("tally increment", lambda: self._tally.increment(candidate_id, token=voter_id))
            except Exception:
                self._roll_back(voter_id, candidate_id)
                raise

            try:
                self._retry("vote confirmation", lambda: self._registry.confirm(voter_id))
            except StoreTimeout:
                logger.error(
                    f"Vote by {voter_id} counted for candidate {candidate_id} but left pending; "
                    "the same vote again or reconcile will confirm it"
                )
                raise

        logger.info(f"Vote recorded: {voter_id} -> candidate {candidate_id}")
        self._feed.publish()
        return VoteReceipt(voter_id=voter_id, candidate_id=candidate_id, candidate_name=candidate.name)

    def _roll_back(self, voter_id: str, candidate_id: int) -> None:
        # only an unconfirmed claim for this ballot is ours to undo
        try:
            record = self._retry("voter lookup", lambda: self._registry.get(voter_id))
            if record is None or not record.pending or record.voted_for != candidate_id:
                return
            self._retry("tally revert", lambda: self._tally.revert(candidate_id, voter_id))
            self._retry("vote withdrawal", lambda: self._registry.withdraw(voter_id, candidate_id))
        except StoreTimeout:
            logger.critical(
                f"Could not roll back pending vote of {voter_id} for candidate {candidate_id}; "
                "run reconcile before this voter can vote again"
            )
            return
        logger.warning(f"Vote by {voter_id} for candidate {candidate_id} rolled back")

    def check_voter(self, voter_id: str) -> VoterStatus:
        """Which screen a voter belongs on: the winner, the waiting room or the ballot."""
        state = self._election.state()
        voter = self._registry.ensure(voter_id)

        if state.winner_revealed:
            return VoterStatus(
                status="winner_revealed", voter=voter, winner=self._tally.get(state.winner_id)
            )
        if voter.has_voted or voter.pending:
            return VoterStatus(status="already_voted", voter=voter)
        return VoterStatus(status="not_voted", voter=voter, candidates=self._tally.candidates())
