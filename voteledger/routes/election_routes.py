from typing import List

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_ledger
from ..ledger import VoteLedger
from ..models import Candidate, ElectionState
from ..schemas import TallyEntry

router = APIRouter(tags=["Election"])


@router.get("/tally", response_model=List[TallyEntry])
def get_tally(ledger: VoteLedger = Depends(get_ledger)):
    snapshot = ledger.tally.snapshot()
    total = sum(c.vote_count for c in snapshot)
    return [TallyEntry.from_candidate(c, total) for c in snapshot]


@router.get("/candidates", response_model=List[Candidate])
def get_candidates(ledger: VoteLedger = Depends(get_ledger)):
    return ledger.tally.candidates()


@router.get("/election", response_model=ElectionState)
def get_election(ledger: VoteLedger = Depends(get_ledger)):
    return ledger.election.state()


@router.get("/election/winner", response_model=Candidate)
def get_winner(ledger: VoteLedger = Depends(get_ledger)):
    winner_id = ledger.election.get_winner()
    if winner_id is None:
        raise HTTPException(status_code=404, detail="The winner has not been revealed yet.")
    winner = ledger.tally.get(winner_id)
    if winner is None:
        raise HTTPException(status_code=404, detail=f"Candidate {winner_id} not found.")
    return winner
