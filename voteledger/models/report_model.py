from typing import List

from pydantic import BaseModel


class ResetReport(BaseModel):
    completed: List[str]
    voters_removed: int = 0


class ReconcileReport(BaseModel):
    confirmed: List[str] = []
    withdrawn: List[str] = []
