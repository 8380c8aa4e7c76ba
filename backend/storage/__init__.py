from .consultation_store import ConsultationStore, StaleWriteError
from .database import SQLiteDB
from .records import ConsultationRecord, MessageRecord, UserRecord
from .user_directory import DuplicateUsernameError, UserDirectory

__all__ = [
    "ConsultationRecord",
    "ConsultationStore",
    "DuplicateUsernameError",
    "MessageRecord",
    "SQLiteDB",
    "StaleWriteError",
    "UserDirectory",
    "UserRecord",
]
