from fastapi import APIRouter, Depends

from ..dependencies import get_ledger
from ..ledger import VoteLedger
from ..models import VoterStatus
from ..schemas import ErrorResponse, VoteRequest, VoteResponse

vote_router = APIRouter(prefix="/vote", tags=["Vote"])


# ------------------------------
# CAST VOTE
# ------------------------------
@vote_router.post(
    "",
    response_model=VoteResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown candidate"},
        409: {"model": ErrorResponse, "description": "Voter has already voted"},
        423: {"model": ErrorResponse, "description": "Election closed"},
        503: {"model": ErrorResponse, "description": "Store timeout, retry"},
    },
)
def cast_vote(vote: VoteRequest, ledger: VoteLedger = Depends(get_ledger)):
    """
    Casts one vote. voter_id must come from the identity provider already
    verified; it is trusted as given.
    """
    receipt = ledger.votes.cast_vote(vote.voter_id, vote.candidate_id)
    return VoteResponse(
        message="Vote cast successfully!",
        candidate_id=receipt.candidate_id,
        candidate_name=receipt.candidate_name,
    )


# ------------------------------
# CHECK IF USER HAS ALREADY VOTED
# ------------------------------
@vote_router.get("/check/{voter_id}", response_model=VoterStatus)
def check_vote(voter_id: str, ledger: VoteLedger = Depends(get_ledger)):
    """
    Creates the voter's profile on first contact and tells the client what to show:
    the winner, the waiting screen, or the ballot.
    """
    return ledger.votes.check_voter(voter_id)
