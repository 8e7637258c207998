"""
Notification feed: tally + election snapshots for observers.

Two transports share one contract. ``PushFeed`` is told about every change
by the ledger and wakes waiters and subscribers at once. ``PollingFeed`` is
never told anything: it re-reads the stores at a bounded interval and emits
a new version whenever the snapshot differs. Either way a lost notification
is harmless, ``current()`` always rebuilds from the stores.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, computed_field

from .config import MAX_POLL_INTERVAL
from .models import Candidate, ElectionState

logger = logging.getLogger(__name__)

SnapshotSource = Callable[[], Tuple[List[Candidate], ElectionState]]


class FeedEvent(BaseModel):
    version: int
    tally: List[Candidate]
    election: ElectionState
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field
    @property
    def total_votes(self) -> int:
        return sum(c.vote_count for c in self.tally)


class Subscription:
    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


class NotificationFeed(ABC):
    def __init__(self, source: SnapshotSource):
        self._source = source
        self._subscribers: Dict[int, Callable[[FeedEvent], None]] = {}
        self._next_subscriber = 0
        self._subscribers_lock = threading.Lock()

    @property
    @abstractmethod
    def version(self) -> int:
        ...

    def current(self) -> FeedEvent:
        tally, election = self._source()
        return FeedEvent(version=self.version, tally=tally, election=election)

    def poll(self, since: int) -> Optional[FeedEvent]:
        """The current snapshot if anything changed after version `since`."""
        self._refresh()
        if self.version > since:
            return self.current()
        return None

    @abstractmethod
    def wait(self, since: int, timeout: float) -> Optional[FeedEvent]:
        """Block up to `timeout` seconds for a version newer than `since`."""

    def publish(self) -> None:
        """Called by the ledger after every state change."""

    def _refresh(self) -> None:
        """Hook for transports that discover changes by looking."""

    def subscribe(self, callback: Callable[[FeedEvent], None]) -> Subscription:
        with self._subscribers_lock:
            key = self._next_subscriber
            self._next_subscriber += 1
            self._subscribers[key] = callback
        return Subscription(lambda: self._unsubscribe(key))

    def _unsubscribe(self, key: int) -> None:
        with self._subscribers_lock:
            self._subscribers.pop(key, None)

    def _deliver(self, event: FeedEvent) -> None:
        # fire and forget: a broken observer never reaches the ledger
        with self._subscribers_lock:
            callbacks = list(self._subscribers.values())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Feed subscriber failed on version {event.version}")

    def events(
        self,
        since: int = 0,
        limit: Optional[int] = None,
        duration: Optional[float] = None,
        wait_step: float = 1.0,
    ) -> Iterator[FeedEvent]:
        """
        Lazily yield every new snapshot after version `since`.

        Each call starts a fresh iterator, so a consumer restarts by calling
        again with the last version it saw. Stops after `limit` events or
        `duration` seconds, whichever comes first.
        """
        deadline = time.monotonic() + duration if duration is not None else None
        sent = 0
        while limit is None or sent < limit:
            step = wait_step
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return
                step = min(step, remaining)
            event = self.wait(since, step)
            if event is None:
                continue
            since = event.version
            sent += 1
            yield event


class PushFeed(NotificationFeed):
    def __init__(self, source: SnapshotSource):
        super().__init__(source)
        self._cond = threading.Condition()
        self._version = 1  # the initial state is the first event

    @property
    def version(self) -> int:
        return self._version

    def publish(self) -> None:
        with self._cond:
            self._version += 1
            self._cond.notify_all()
        with self._subscribers_lock:
            listening = bool(self._subscribers)
        if listening:
            try:
                event = self.current()
            except Exception:
                logger.warning(f"Feed version {self._version} published without snapshot", exc_info=True)
                return
            self._deliver(event)

    def wait(self, since: int, timeout: float) -> Optional[FeedEvent]:
        with self._cond:
            changed = self._cond.wait_for(lambda: self._version > since, timeout)
        return self.current() if changed else None


class PollingFeed(NotificationFeed):
    def __init__(self, source: SnapshotSource, interval: float = 3.0):
        super().__init__(source)
        if not 0 < interval <= MAX_POLL_INTERVAL:
            raise ValueError(f"poll interval must be in (0, {MAX_POLL_INTERVAL}] seconds")
        self.interval = interval
        self._lock = threading.Lock()
        self._version = 0
        self._fingerprint = None

    @property
    def version(self) -> int:
        return self._version

    def _refresh(self) -> None:
        tally, election = self._source()
        fingerprint = (
            tuple((c.id, c.name, c.vote_count) for c in tally),
            (election.winner_revealed, election.winner_id),
        )
        with self._lock:
            if fingerprint != self._fingerprint:
                self._fingerprint = fingerprint
                self._version += 1

    def wait(self, since: int, timeout: float) -> Optional[FeedEvent]:
        deadline = time.monotonic() + timeout
        while True:
            self._refresh()
            if self._version > since:
                return self.current()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(self.interval, remaining))

    def subscribe(self, callback: Callable[[FeedEvent], None]) -> Subscription:
        # one poller per subscriber, each remembers the last version it delivered
        stop = threading.Event()
        threading.Thread(target=self._poll_loop, args=(callback, stop), daemon=True).start()
        return Subscription(stop.set)

    def _poll_loop(self, callback: Callable[[FeedEvent], None], stop: threading.Event) -> None:
        seen = self._version
        while not stop.wait(self.interval):
            try:
                self._refresh()
                if self._version <= seen:
                    continue
                event = self.current()
                seen = event.version
                callback(event)
            except Exception:
                logger.warning("Feed poll failed; retrying next interval", exc_info=True)
