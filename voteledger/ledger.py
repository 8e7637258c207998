import logging
from typing import Iterable, List, Optional, Tuple

from .admin import AdminControl
from .config import MONGO_BACKEND, POLL_TRANSPORT, PUSH_TRANSPORT, Settings
from .feed import NotificationFeed, PollingFeed, PushFeed
from .locks import ElectionLock, VoterLocks
from .models import Candidate, ElectionState
from .storage import MemoryElectionState, MemoryTallyStore, MemoryVoterRegistry
from .storage_mongo import MongoStorage
from .stores import ElectionStateMachine, TallyStore, VoterRegistry
from .vote_service import VoteService

logger = logging.getLogger(__name__)


class VoteLedger:
    """Wires the three stores, the feed and the two services of one election."""

    def __init__(
        self,
        registry: VoterRegistry,
        tally: TallyStore,
        election: ElectionStateMachine,
        feed_transport: str = PUSH_TRANSPORT,
        poll_interval: float = 3.0,
        timeout: float = 5.0,
        retries: int = 3,
        backoff: float = 0.1,
        storage: Optional[MongoStorage] = None,
    ):
        self.registry = registry
        self.tally = tally
        self.election = election
        self.storage = storage
        self.lock = ElectionLock(timeout)

        self.feed: NotificationFeed
        if feed_transport == POLL_TRANSPORT:
            self.feed = PollingFeed(self.snapshot, interval=poll_interval)
        else:
            self.feed = PushFeed(self.snapshot)

        self.votes = VoteService(
            registry, tally, election, self.feed, self.lock, VoterLocks(timeout), retries, backoff
        )
        self.admin = AdminControl(registry, tally, election, self.feed, self.lock)

    def snapshot(self) -> Tuple[List[Candidate], ElectionState]:
        return self.tally.snapshot(), self.election.state()

    def seed(self, names: Iterable[str]) -> List[Candidate]:
        """
        Create the ballot once; an election that already has candidates is left alone.

        Ids are fixed by ballot position, so workers seeding the same empty
        database at once collide on the unique id instead of doubling the ballot.
        """
        if self.tally.candidates():
            return []
        created = []
        for candidate_id, name in enumerate(names, start=1):
            try:
                created.append(self.tally.add_candidate(name, candidate_id=candidate_id))
            except ValueError:
                logger.info(f"Candidate {candidate_id} already seeded by another worker")
        if created:
            logger.info(f"Seeded {len(created)} candidates")
        return created

    def close(self) -> None:
        if self.storage is not None:
            self.storage.close()


def build_ledger(settings: Settings) -> VoteLedger:
    timeout = settings.store_timeout_seconds
    storage = None
    if settings.store_backend == MONGO_BACKEND:
        storage = MongoStorage.connect(settings)
        registry, tally, election = storage.registry, storage.tally, storage.election
    else:
        tally = MemoryTallyStore(timeout)
        registry = MemoryVoterRegistry(timeout)
        election = MemoryElectionState(tally, timeout)

    ledger = VoteLedger(
        registry,
        tally,
        election,
        feed_transport=settings.feed_transport,
        poll_interval=settings.feed_poll_interval,
        timeout=timeout,
        retries=settings.increment_retries,
        backoff=settings.retry_backoff_seconds,
        storage=storage,
    )
    ledger.seed(settings.candidates)
    logger.info(f"Vote ledger ready ({settings.store_backend} store, {settings.feed_transport} feed)")
    return ledger
