from enum import Enum
from typing import Optional

from pydantic import BaseModel, computed_field, model_validator


class ElectionPhase(str, Enum):
    OPEN = "open"
    WINNER_REVEALED = "winner_revealed"


class ElectionState(BaseModel):
    is_open: bool = True
    winner_revealed: bool = False
    winner_id: Optional[int] = None

    @model_validator(mode="after")
    def _winner_iff_revealed(self):
        if self.winner_revealed != (self.winner_id is not None):
            raise ValueError("winner_id must be set exactly when the winner is revealed")
        if self.is_open == self.winner_revealed:
            raise ValueError("an election is open until its winner is revealed")
        return self

    @computed_field
    @property
    def phase(self) -> ElectionPhase:
        return ElectionPhase.WINNER_REVEALED if self.winner_revealed else ElectionPhase.OPEN

    @classmethod
    def opened(cls) -> "ElectionState":
        return cls()

    @classmethod
    def revealed(cls, winner_id: int) -> "ElectionState":
        return cls(is_open=False, winner_revealed=True, winner_id=winner_id)
