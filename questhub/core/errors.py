"""
Error taxonomy for the quest reward core.

Every error carries a stable ``code`` so callers can decide whether to retry
(``TransientError``), fix their input (``PreconditionError``), stop
(``AuthorizationError``) or escalate (``FatalError``). Routers map
``http_status`` straight onto the response.
"""
from __future__ import annotations

from typing import Optional


class QuestError(Exception):
    code = "quest_error"
    http_status = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = str(self.args[0])

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


# ---- Authorization ----------------------------------------------------------

class AuthorizationError(QuestError):
    """Requester is not allowed to perform this action"""
    code = "not_authorized"
    http_status = 403


class ClaimAddressMismatchError(AuthorizationError):
    """Claim wallet does not match the wallet that earned the points"""
    code = "claim_address_mismatch"


# ---- Preconditions ----------------------------------------------------------

class PreconditionError(QuestError):
    code = "precondition_failed"
    http_status = 400


class QuestNotFoundError(PreconditionError):
    """Quest not found"""
    code = "quest_not_found"
    http_status = 404


class TaskNotFoundError(PreconditionError):
    """Task not found"""
    code = "task_not_found"
    http_status = 404


class ProgressNotFoundError(PreconditionError):
    """No progress recorded for this participant"""
    code = "progress_not_found"
    http_status = 404


class TaskExpiredError(PreconditionError):
    """Quest has ended; tasks can no longer be submitted"""
    code = "task_expired"


class PrematureFinalizationError(PreconditionError):
    """Quest has not yet ended"""
    code = "quest_not_ended"


class AlreadyFinalizedError(PreconditionError):
    """Quest is already finalized"""
    code = "already_finalized"
    http_status = 409


class NotFinalizedError(PreconditionError):
    """Quest has not been finalized yet"""
    code = "not_finalized"
    http_status = 409


class AllocationsPendingError(PreconditionError):
    """Allocations are not yet all applied to the reward pool"""
    code = "allocations_pending"
    http_status = 409


class NoParticipationError(PreconditionError):
    """No users have completed tasks"""
    code = "no_participation"


class NoEligibleParticipantsError(PreconditionError):
    """No eligible users with valid wallet addresses"""
    code = "no_eligible_participants"


class NotEligibleError(PreconditionError):
    """Address not eligible for claiming"""
    code = "not_eligible"


class AlreadyRewardedError(PreconditionError):
    """Reward already claimed"""
    code = "already_rewarded"
    http_status = 409


class DuplicateAllocationError(PreconditionError):
    """Address already has an allocation in the reward pool"""
    code = "duplicate_allocation"
    http_status = 409


class InsufficientPoolFundsError(PreconditionError):
    """Allocation exceeds the uncommitted reward pool balance"""
    code = "insufficient_pool_funds"


class PoolNotInitializedError(PreconditionError):
    """Reward pool has not been initialized"""
    code = "pool_not_initialized"
    http_status = 409


class PoolAlreadyInitializedError(PreconditionError):
    """Reward pool is already initialized"""
    code = "pool_already_initialized"
    http_status = 409


# ---- Transient (retry with fresh state) -------------------------------------

class TransientError(QuestError):
    code = "transient"
    http_status = 503


class UtxoConflictError(TransientError):
    """Pool UTxO was spent by another transaction"""
    code = "utxo_conflict"


class RateLimitedError(TransientError):
    """Upstream platform rate limit reached"""
    code = "rate_limited"


class UpstreamTimeoutError(TransientError):
    """Upstream platform did not answer in time"""
    code = "upstream_timeout"


class ConfirmationPendingError(TransientError):
    """Transaction submitted but not yet confirmed"""
    code = "confirmation_pending"

    def __init__(self, tx_hash: str, message: Optional[str] = None):
        super().__init__(message or f"Transaction {tx_hash} not yet confirmed")
        self.tx_hash = tx_hash


# ---- Fatal ------------------------------------------------------------------

class FatalError(QuestError):
    code = "fatal"
    http_status = 502


class ExternalServiceError(FatalError):
    """External service failure"""
    code = "external_service_error"


class PoolConflictError(FatalError):
    """Reward pool kept changing underneath us; retries exhausted"""
    code = "pool_conflict"
