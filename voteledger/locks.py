import threading
from contextlib import contextmanager
from typing import Dict, List

from .errors import StoreTimeout


class ElectionLock:
    """
    Readers/writer lock over one election.

    Votes hold it shared, so they only contend with admin actions.
    Reveal and reset hold it exclusively. A waiting writer blocks new
    readers so an admin action is never starved by a stream of votes.
    """

    def __init__(self, timeout: float):
        self._timeout = timeout
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def shared(self):
        with self._cond:
            ready = self._cond.wait_for(
                lambda: not self._writer and not self._writers_waiting, self._timeout
            )
            if not ready:
                raise StoreTimeout("election lock (shared)")
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def exclusive(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                ready = self._cond.wait_for(
                    lambda: not self._writer and not self._readers, self._timeout
                )
            finally:
                self._writers_waiting -= 1
            if not ready:
                # readers parked behind us may go again
                self._cond.notify_all()
                raise StoreTimeout("election lock (exclusive)")
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class VoterLocks:
    """
    One lock per voter id, created on first use and dropped once nobody
    holds or waits on it. Attempts by the same voter run one at a time, so
    a retry never interleaves with the rollback of an earlier attempt.
    """

    def __init__(self, timeout: float):
        self._timeout = timeout
        self._mutex = threading.Lock()
        self._locks: Dict[str, List] = {}  # voter id -> [lock, users]

    @contextmanager
    def hold(self, voter_id: str):
        with self._mutex:
            entry = self._locks.setdefault(voter_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            if not entry[0].acquire(timeout=self._timeout):
                raise StoreTimeout(f"voter lock ({voter_id})")
            try:
                yield
            finally:
                entry[0].release()
        finally:
            with self._mutex:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[voter_id]
