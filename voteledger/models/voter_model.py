from typing import Optional

from pydantic import BaseModel


class VoterRecord(BaseModel):
    voter_id: str  # stable id from the identity provider
    has_voted: bool = False
    voted_for: Optional[int] = None
    pending: bool = False  # vote in flight, not yet counted as has_voted
