"""Domain errors raised by the ledger and rendered by the API layer."""
from typing import List, Optional


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    message = "Ledger error."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)

    @property
    def detail(self) -> str:
        return str(self)


class AlreadyVoted(LedgerError):
    code = "already_voted"
    status_code = 409
    message = "You have already voted. Each voter can vote only once."

    def __init__(self, voter_id: str):
        self.voter_id = voter_id
        super().__init__()


class UnknownCandidate(LedgerError):
    code = "unknown_candidate"
    status_code = 404
    message = "Candidate not found."

    def __init__(self, candidate_id: int):
        self.candidate_id = candidate_id
        super().__init__(f"Candidate {candidate_id} not found.")


class NotFound(UnknownCandidate):
    """Raised by the tally store itself when a candidate row is missing."""
    code = "not_found"


class ElectionClosed(LedgerError):
    code = "election_closed"
    status_code = 423
    message = "Voting is closed: the winner has already been revealed."


class AlreadyRevealed(LedgerError):
    code = "already_revealed"
    status_code = 409
    message = "The winner has already been revealed."


class InvalidCandidate(LedgerError):
    code = "invalid_candidate"
    status_code = 422

    def __init__(self, candidate_id: int):
        self.candidate_id = candidate_id
        super().__init__(f"Candidate {candidate_id} cannot be declared winner: it does not exist.")


class NoCandidates(LedgerError):
    code = "no_candidates"
    status_code = 422
    message = "There are no candidates to pick a winner from."


class StoreTimeout(LedgerError):
    """Store did not answer in time. Safe to retry."""
    code = "timeout"
    status_code = 503
    retryable = True

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Timed out during {operation}; please retry.")


class PartialFailure(LedgerError):
    """Reset stopped half way. Needs manual reconciliation, never retried."""
    code = "partial_failure"
    status_code = 207

    def __init__(self, completed: List[str], failed: str, cause: BaseException):
        self.completed = list(completed)
        self.failed = failed
        self.cause = cause
        super().__init__(
            f"Reset failed at '{failed}' after {self.completed or 'no steps'}: {cause}. "
            "Manual reconciliation required."
        )
