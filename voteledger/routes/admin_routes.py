import logging

from fastapi import APIRouter, Depends, Form, HTTPException
from fastapi.responses import JSONResponse

from ..config import Settings
from ..dependencies import get_ledger, get_settings, require_admin
from ..errors import PartialFailure
from ..ledger import VoteLedger
from ..models import Candidate, ReconcileReport
from ..schemas import CandidateCreate, ErrorResponse, ResetResponse, RevealResponse, TokenResponse
from ..security import ADMIN_ROLE, authenticate_admin, create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/login", response_model=TokenResponse)
def admin_login(
    username: str = Form(...),
    password: str = Form(...),
    settings: Settings = Depends(get_settings),
):
    error = authenticate_admin(username, password, settings)
    if error:
        raise HTTPException(status_code=401, detail=error)
    token = create_access_token({"sub": username, "role": ADMIN_ROLE}, settings)
    return TokenResponse(access_token=token)


@router.post(
    "/reveal",
    response_model=RevealResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Winner already revealed"},
        422: {"model": ErrorResponse, "description": "No candidates"},
    },
)
def reveal_winner(ledger: VoteLedger = Depends(get_ledger), admin: str = Depends(require_admin)):
    winner = ledger.admin.reveal_winner()
    logger.info(f"Reveal requested by {admin}")
    return RevealResponse(message="Winner has been revealed!", winner=winner)


@router.post(
    "/reset",
    response_model=ResetResponse,
    responses={207: {"model": ResetResponse, "description": "Partial failure, manual reconciliation required"}},
)
def reset_election(ledger: VoteLedger = Depends(get_ledger), admin: str = Depends(require_admin)):
    logger.warning(f"Election reset requested by {admin}")
    try:
        report = ledger.admin.reset_election()
    except PartialFailure as e:
        body = ResetResponse(
            status="partial_failure", completed=e.completed, failed=e.failed, detail=e.detail
        )
        return JSONResponse(status_code=207, content=body.model_dump())
    return ResetResponse(status="ok", completed=report.completed, voters_removed=report.voters_removed)


@router.post("/candidates", response_model=Candidate, status_code=201)
def add_candidate(
    body: CandidateCreate,
    ledger: VoteLedger = Depends(get_ledger),
    admin: str = Depends(require_admin),
):
    return ledger.admin.add_candidate(body.name)


@router.post("/reconcile", response_model=ReconcileReport)
def reconcile(ledger: VoteLedger = Depends(get_ledger), admin: str = Depends(require_admin)):
    return ledger.admin.reconcile()
