from pydantic import BaseModel, Field


class Candidate(BaseModel):
    id: int
    name: str = Field(..., min_length=1, examples=["Candidate A"])
    vote_count: int = Field(0, ge=0)
