from typing import List, Optional

from pydantic import BaseModel, Field

from .models import Candidate


class VoteRequest(BaseModel):
    voter_id: str = Field(..., min_length=1)
    candidate_id: int


class VoteResponse(BaseModel):
    message: str
    candidate_id: int
    candidate_name: str


class TallyEntry(BaseModel):
    candidate_id: int
    name: str
    vote_count: int
    share: float = Field(0.0, description="Percent of all votes cast, one decimal")

    @classmethod
    def from_candidate(cls, candidate: Candidate, total: int = 0) -> "TallyEntry":
        share = round(100 * candidate.vote_count / total, 1) if total else 0.0
        return cls(candidate_id=candidate.id, name=candidate.name, vote_count=candidate.vote_count, share=share)


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class RevealResponse(BaseModel):
    message: str
    winner: Candidate


class ResetResponse(BaseModel):
    status: str
    completed: List[str]
    failed: Optional[str] = None
    voters_removed: int = 0
    detail: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ErrorResponse(BaseModel):
    error: str
    detail: str
