import logging
from typing import Callable, List, Tuple

from .errors import ElectionClosed, NoCandidates, NotFound, PartialFailure
from .feed import NotificationFeed
from .locks import ElectionLock
from .models import Candidate, ReconcileReport, ResetReport
from .stores import ElectionStateMachine, TallyStore, VoterRegistry

logger = logging.getLogger(__name__)

VOTER_REGISTRY_STEP = "voter_registry"
TALLY_STORE_STEP = "tally_store"
ELECTION_STATE_STEP = "election_state"


class AdminControl:
    """Reveal, reset and candidate management. Every action holds the election lock exclusively."""

    def __init__(
        self,
        registry: VoterRegistry,
        tally: TallyStore,
        election: ElectionStateMachine,
        feed: NotificationFeed,
        lock: ElectionLock,
    ):
        self._registry = registry
        self._tally = tally
        self._election = election
        self._feed = feed
        self._lock = lock

    def reveal_winner(self) -> Candidate:
        with self._lock.exclusive():
            snapshot = self._tally.snapshot()
            if not snapshot:
                raise NoCandidates()
            # highest count, lowest id on a tie
            winner = snapshot[0]
            self._election.reveal(winner.id)

        logger.info(f"Winner revealed: candidate {winner.id} ({winner.name}) with {winner.vote_count} votes")
        self._feed.publish()
        return winner

    def reset_election(self) -> ResetReport:
        """
        Wipe voters, zero the tally and reopen the election, in that order.

        Stops at the first failing step and raises PartialFailure. The stores
        are then left half reset and an operator has to repair them; the
        reset is deliberately not retried.
        """
        steps: List[Tuple[str, Callable]] = [
            (VOTER_REGISTRY_STEP, self._registry.clear_all),
            (TALLY_STORE_STEP, self._tally.reset_all),
            (ELECTION_STATE_STEP, self._election.reset),
        ]
        completed: List[str] = []
        voters_removed = 0
        try:
            with self._lock.exclusive():
                for name, step in steps:
                    try:
                        result = step()
                    except Exception as e:
                        logger.critical(
                            f"Election reset failed at '{name}' after {completed}: {e}. "
                            "Stores are inconsistent, manual reconciliation required."
                        )
                        raise PartialFailure(completed, name, e) from e
                    if name == VOTER_REGISTRY_STEP:
                        voters_removed = result
                    completed.append(name)
        finally:
            self._feed.publish()

        logger.info(f"Election reset: {voters_removed} voter records removed")
        return ResetReport(completed=completed, voters_removed=voters_removed)

    def add_candidate(self, name: str) -> Candidate:
        with self._lock.exclusive():
            if not self._election.is_open():
                raise ElectionClosed()
            candidate = self._tally.add_candidate(name)
        self._feed.publish()
        return candidate

    def reconcile(self) -> ReconcileReport:
        """Settle votes left pending by a crash or timeout, using the tally as the source of truth."""
        report = ReconcileReport()
        with self._lock.exclusive():
            for record in self._registry.pending():
                applied = False
                if record.voted_for is not None:
                    try:
                        applied = self._tally.was_applied(record.voted_for, record.voter_id)
                    except NotFound:
                        applied = False
                if applied:
                    self._registry.confirm(record.voter_id)
                    report.confirmed.append(record.voter_id)
                else:
                    self._registry.withdraw(record.voter_id)
                    report.withdrawn.append(record.voter_id)

        if report.confirmed or report.withdrawn:
            logger.warning(
                f"Reconciled pending votes: confirmed={report.confirmed} withdrawn={report.withdrawn}"
            )
            self._feed.publish()
        return report
