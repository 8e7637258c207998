from .candidate_model import Candidate
from .election_model import ElectionPhase, ElectionState
from .report_model import ReconcileReport, ResetReport
from .vote_model import VoteReceipt, VoterStatus
from .voter_model import VoterRecord

__all__ = [
    "Candidate",
    "ElectionPhase",
    "ElectionState",
    "ReconcileReport",
    "ResetReport",
    "VoteReceipt",
    "VoterRecord",
    "VoterStatus",
]
