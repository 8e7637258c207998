# storage_mongo.py
import logging
from functools import wraps
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import AutoReconnect, DuplicateKeyError, ExecutionTimeout, WTimeoutError

from .config import Settings
from .database.connection import (
    CANDIDATES_COLLECTION,
    COUNTERS_COLLECTION,
    ELECTION_COLLECTION,
    VOTERS_COLLECTION,
    get_client,
    get_database,
)
from .errors import AlreadyVoted, NotFound, StoreTimeout
from .models import Candidate, ElectionState, VoterRecord
from .stores import ElectionStateMachine, TallyStore, VoterRegistry

logger = logging.getLogger(__name__)

# NetworkTimeout and ServerSelectionTimeoutError are AutoReconnect subclasses
_TIMEOUT_ERRORS = (AutoReconnect, ExecutionTimeout, WTimeoutError)

ELECTION_DOC_ID = 1
CANDIDATE_SEQUENCE = "candidate_id"


def bounded(operation: str):
    """Surface driver timeouts as the retryable StoreTimeout."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except _TIMEOUT_ERRORS as e:
                logger.warning(f"MongoDB {operation} timed out: {e}")
                raise StoreTimeout(operation) from e
        return wrapper
    return decorator


def _voter_from_doc(doc: Dict[str, Any]) -> VoterRecord:
    return VoterRecord(
        voter_id=doc["_id"],
        has_voted=doc.get("has_voted", False),
        voted_for=doc.get("voted_for"),
        pending=doc.get("pending", False),
    )


def _candidate_from_doc(doc: Dict[str, Any]) -> Candidate:
    return Candidate(id=doc["_id"], name=doc["name"], vote_count=doc.get("vote_count", 0))


class MongoVoterRegistry(VoterRegistry):
    def __init__(self, db: Database):
        self.collection = db[VOTERS_COLLECTION]
        self.collection.create_index("pending")

    @bounded("voter lookup")
    def get(self, voter_id: str) -> Optional[VoterRecord]:
        doc = self.collection.find_one({"_id": voter_id})
        return _voter_from_doc(doc) if doc else None

    @bounded("voter profile creation")
    def ensure(self, voter_id: str) -> VoterRecord:
        try:
            self.collection.insert_one(
                {"_id": voter_id, "has_voted": False, "voted_for": None, "pending": False}
            )
            logger.info(f"Voter profile {voter_id} created")
        except DuplicateKeyError:
            pass
        return _voter_from_doc(self.collection.find_one({"_id": voter_id}))

    @bounded("voter registration")
    def register(self, voter_id: str, candidate_id: int) -> VoterRecord:
        claimed = {"has_voted": False, "voted_for": candidate_id, "pending": True}
        try:
            # unique _id makes the first contact insert the claim itself
            self.collection.insert_one({"_id": voter_id, **claimed})
        except DuplicateKeyError:
            # profile exists: claim it if idle, or accept our own pending claim again
            result = self.collection.update_one(
                {
                    "_id": voter_id,
                    "has_voted": False,
                    "$or": [{"pending": False}, {"voted_for": candidate_id}],
                },
                {"$set": {"voted_for": candidate_id, "pending": True}},
            )
            if result.matched_count == 0:
                raise AlreadyVoted(voter_id)
        return VoterRecord(voter_id=voter_id, **claimed)

    @bounded("vote confirmation")
    def confirm(self, voter_id: str) -> None:
        self.collection.update_one(
            {"_id": voter_id, "pending": True},
            {"$set": {"pending": False, "has_voted": True}},
        )

    @bounded("vote withdrawal")
    def withdraw(self, voter_id: str, candidate_id: Optional[int] = None) -> None:
        query: Dict[str, Any] = {"_id": voter_id, "pending": True}
        if candidate_id is not None:
            query["voted_for"] = candidate_id
        self.collection.update_one(query, {"$set": {"pending": False, "voted_for": None}})

    @bounded("pending voter scan")
    def pending(self) -> List[VoterRecord]:
        return [_voter_from_doc(doc) for doc in self.collection.find({"pending": True})]

    @bounded("voter registry reset")
    def clear_all(self) -> int:
        removed = self.collection.delete_many({}).deleted_count
        logger.info(f"Voter registry cleared ({removed} records)")
        return removed


class MongoTallyStore(TallyStore):
    def __init__(self, db: Database):
        self.collection = db[CANDIDATES_COLLECTION]
        self.counters = db[COUNTERS_COLLECTION]

    def _next_id(self) -> int:
        doc = self.counters.find_one_and_update(
            {"_id": CANDIDATE_SEQUENCE},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return doc["seq"]

    @bounded("candidate creation")
    def add_candidate(self, name: str, candidate_id: Optional[int] = None) -> Candidate:
        if candidate_id is None:
            candidate_id = self._next_id()
        else:
            self.counters.update_one(
                {"_id": CANDIDATE_SEQUENCE}, {"$max": {"seq": candidate_id}}, upsert=True
            )
        candidate = Candidate(id=candidate_id, name=name)
        try:
            self.collection.insert_one(
                {"_id": candidate.id, "name": candidate.name, "vote_count": 0, "applied": []}
            )
        except DuplicateKeyError:
            raise ValueError(f"Candidate id {candidate_id} already exists")
        logger.info(f"Candidate {candidate_id} ({name}) added")
        return candidate

    @bounded("candidate read")
    def get(self, candidate_id: int) -> Optional[Candidate]:
        doc = self.collection.find_one({"_id": candidate_id}, {"applied": 0})
        return _candidate_from_doc(doc) if doc else None

    @bounded("tally increment")
    def increment(self, candidate_id: int, token: Optional[str] = None) -> None:
        if token is None:
            result = self.collection.update_one({"_id": candidate_id}, {"$inc": {"vote_count": 1}})
            if result.matched_count == 0:
                raise NotFound(candidate_id)
            return

        # Tokens live in the candidate document so the check and the $inc are
        # one atomic write. The array grows by one voter id per counted vote
        # until reset_all, which bounds an election to a few hundred thousand
        # votes per candidate under the 16 MB document limit.
        result = self.collection.update_one(
            {"_id": candidate_id, "applied": {"$ne": token}},
            {"$inc": {"vote_count": 1}, "$push": {"applied": token}},
        )
        if result.matched_count == 0 and self.collection.find_one({"_id": candidate_id}, {"_id": 1}) is None:
            raise NotFound(candidate_id)

    @bounded("tally revert")
    def revert(self, candidate_id: int, token: str) -> bool:
        result = self.collection.update_one(
            {"_id": candidate_id, "applied": token},
            {"$inc": {"vote_count": -1}, "$pull": {"applied": token}},
        )
        return result.modified_count == 1

    @bounded("tally token lookup")
    def was_applied(self, candidate_id: int, token: str) -> bool:
        return self.collection.find_one({"_id": candidate_id, "applied": token}, {"_id": 1}) is not None

    @bounded("tally snapshot")
    def candidates(self) -> List[Candidate]:
        cursor = self.collection.find({}, {"applied": 0}).sort("_id", ASCENDING)
        return [_candidate_from_doc(doc) for doc in cursor]

    @bounded("tally reset")
    def reset_all(self) -> None:
        result = self.collection.update_many({}, {"$set": {"vote_count": 0, "applied": []}})
        logger.info(f"Tally reset for {result.matched_count} candidates")


class MongoElectionState(ElectionStateMachine):
    """The single app_state document, _id 1."""

    def __init__(self, db: Database, tally: TallyStore):
        super().__init__(tally)
        self.collection = db[ELECTION_COLLECTION]
        try:
            self.collection.insert_one(
                {"_id": ELECTION_DOC_ID, "winner_revealed": False, "winner_id": None}
            )
        except DuplicateKeyError:
            pass

    @bounded("election state read")
    def state(self) -> ElectionState:
        doc = self.collection.find_one({"_id": ELECTION_DOC_ID})
        if not doc or not doc.get("winner_revealed"):
            return ElectionState.opened()
        return ElectionState.revealed(doc["winner_id"])

    @bounded("winner reveal")
    def _mark_revealed(self, winner_id: int) -> bool:
        result = self.collection.update_one(
            {"_id": ELECTION_DOC_ID, "winner_revealed": False},
            {"$set": {"winner_revealed": True, "winner_id": winner_id}},
        )
        return result.matched_count == 1

    @bounded("election state reset")
    def reset(self) -> None:
        self.collection.replace_one(
            {"_id": ELECTION_DOC_ID},
            {"winner_revealed": False, "winner_id": None},
            upsert=True,
        )


class MongoStorage:
    """The three Mongo-backed stores over one database."""

    def __init__(self, db: Database, client: Optional[MongoClient] = None):
        self.db = db
        self.client = client
        self.tally = MongoTallyStore(db)
        self.registry = MongoVoterRegistry(db)
        self.election = MongoElectionState(db, self.tally)

    @classmethod
    def connect(cls, settings: Settings) -> "MongoStorage":
        client = get_client(settings)
        try:
            client.server_info()
        except _TIMEOUT_ERRORS as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise
        logger.info(f"Connected to MongoDB, database: {settings.mongo_db}")
        return cls(get_database(client, settings), client)

    def close(self):
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
