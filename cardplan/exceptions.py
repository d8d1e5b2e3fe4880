"""Error taxonomy for the payment plan engine"""


class PlanEngineError(Exception):
    """Base exception for the engine; carries a stable kind and a readable reason"""

    kind = "plan_engine_error"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(PlanEngineError, ValueError):
    """Parameters are missing or out of range; correctable by the caller"""

    kind = "validation_error"


class ConflictError(PlanEngineError):
    """Request conflicts with existing state (already planned, mixed currency, stale write)"""

    kind = "conflict_error"


class NotFoundError(PlanEngineError):
    """Transaction, account, plan or payment does not exist"""

    kind = "not_found"


class InvalidStateError(PlanEngineError):
    """Operation is not legal for the current plan or payment status"""

    kind = "invalid_state"


class InfrastructureError(PlanEngineError):
    """Storage or transport failure; retryable by the caller"""

    kind = "infrastructure_error"
