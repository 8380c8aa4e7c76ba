from .api import ApiError, MedikitApiClient
from .session import ConsultationSession, compute_unread, merge_consultations
from .subscriptions import SessionSync, Subscription

__all__ = [
    "ApiError",
    "ConsultationSession",
    "MedikitApiClient",
    "SessionSync",
    "Subscription",
    "compute_unread",
    "merge_consultations",
]
