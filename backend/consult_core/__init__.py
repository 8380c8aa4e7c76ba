from .lifecycle import (
    ConsultationConflict,
    ConsultationController,
    ConsultationError,
    ConsultationNotFound,
    PreconditionError,
)
from .models import AiExchange, MessageOutcome, invariant_violations
from .policy import ConsultationPolicy, PolicyDecision

__all__ = [
    "AiExchange",
    "ConsultationConflict",
    "ConsultationController",
    "ConsultationError",
    "ConsultationNotFound",
    "ConsultationPolicy",
    "MessageOutcome",
    "PolicyDecision",
    "PreconditionError",
    "invariant_violations",
]
