from typing import List, Literal, Optional

from pydantic import BaseModel

from .candidate_model import Candidate
from .voter_model import VoterRecord


class VoteReceipt(BaseModel):
    voter_id: str
    candidate_id: int
    candidate_name: str


class VoterStatus(BaseModel):
    status: Literal["winner_revealed", "already_voted", "not_voted"]
    voter: VoterRecord
    winner: Optional[Candidate] = None
    candidates: List[Candidate] = []
