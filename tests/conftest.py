import uuid

import mongomock
import pytest
from fastapi.testclient import TestClient

from voteledger.config import Settings
from voteledger.ledger import VoteLedger
from voteledger.main import create_app
from voteledger.security import hash_password
from voteledger.storage import MemoryElectionState, MemoryTallyStore, MemoryVoterRegistry
from voteledger.storage_mongo import MongoStorage

ADMIN_PASSWORD = "correct horse battery"


def make_memory_ledger(tally=None, registry=None, **kwargs) -> VoteLedger:
    tally = tally or MemoryTallyStore(timeout=1.0)
    registry = registry or MemoryVoterRegistry(timeout=1.0)
    election = MemoryElectionState(tally, timeout=1.0)
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("backoff", 0)
    return VoteLedger(registry, tally, election, **kwargs)


def make_mongo_ledger(**kwargs) -> VoteLedger:
    storage = MongoStorage(mongomock.MongoClient()[f"vote_ledger_{uuid.uuid4().hex}"])
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("backoff", 0)
    return VoteLedger(storage.registry, storage.tally, storage.election, storage=storage, **kwargs)


@pytest.fixture(params=["memory", "mongo"])
def ledger(request):
    factory = make_memory_ledger if request.param == "memory" else make_mongo_ledger
    ledger = factory()
    ledger.seed(["A", "B"])
    return ledger


@pytest.fixture
def memory_ledger():
    ledger = make_memory_ledger()
    ledger.seed(["A", "B"])
    return ledger


@pytest.fixture(scope="session")
def admin_password_hash():
    return hash_password(ADMIN_PASSWORD)


@pytest.fixture
def settings(admin_password_hash):
    return Settings(
        candidates=["A", "B"],
        secret_key="test-secret",
        admin_password_hash=admin_password_hash,
        store_timeout_seconds=1.0,
        retry_backoff_seconds=0,
        feed_stream_seconds=2.0,
    )


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))


@pytest.fixture
def admin_headers(client):
    resp = client.post("/admin/login", data={"username": "admin", "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
