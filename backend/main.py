from __future__ import annotations

import logging
import os
import re
import sqlite3
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from assist import AiResponder
from consult_core import ConsultationController, ConsultationError
from storage import ConsultationStore, DuplicateUsernameError, SQLiteDB, UserDirectory
from storage.records import ROLE_PATIENT

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_local_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not _ENV_KEY_RE.fullmatch(key):
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        os.environ.setdefault(key, value)


def _bootstrap_local_env() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    for candidate in (repo_root / ".env", repo_root / "backend/.env"):
        if candidate.exists():
            _load_local_env_file(candidate)


_bootstrap_local_env()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("medikit")


def _flag(name: str) -> bool:
    return os.getenv(name, "false").strip().lower() in {"1", "true", "yes"}


def _allowed_origins() -> list[str]:
    raw = os.getenv("CLIENT_ORIGIN", "http://localhost:5173")
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    if "*" in origins:
        return ["*"]
    return origins


class SignupRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class CreateConsultationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str | None = Field(default=None, alias="patientId")


class SubmitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doctor_id: str | None = Field(default=None, alias="doctorId")


class MessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender_id: str | None = Field(default=None, alias="senderId")
    sender_role: str | None = Field(default=None, alias="senderRole")
    content: str | None = None
    doctor_id: str | None = Field(default=None, alias="doctorId")


class AiRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: str | None = Field(default=None, alias="patientId")
    complaint: str | None = None


class MedikitApp:
    def __init__(self) -> None:
        db_path = os.getenv(
            "MEDIKIT_DB_PATH",
            str(Path(__file__).resolve().parent / "medikit.sqlite"),
        )
        self.db = SQLiteDB(db_path)
        self.users = UserDirectory(self.db)
        self.consultations = ConsultationStore(self.db)
        self.responder = AiResponder.from_env()
        self.controller = ConsultationController(
            consultations=self.consultations,
            users=self.users,
            responder=self.responder,
        )
        if not _flag("MEDIKIT_SKIP_SEED"):
            self.users.seed_if_needed()


container = MedikitApp()
app = FastAPI(title="Medikit Chat Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Rejected request body for %s %s: %s", request.method, request.url.path, exc.errors())
    return _error(400, "Invalid request body")


@app.exception_handler(ConsultationError)
async def _consultation_error(request: Request, exc: ConsultationError) -> JSONResponse:
    logger.info("Rejected %s %s [%s]: %s", request.method, request.url.path, exc.code or "-", exc.message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(sqlite3.Error)
async def _storage_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _error(500, "Internal server error")


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return _error(500, "Internal server error")


@app.middleware("http")
async def _log_request(request: Request, call_next):
    logger.debug("Request: %s %s", request.method, request.url.path)
    return await call_next(request)


def _clean(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


@app.get("/api/health")
def health() -> dict[str, Any]:
    return {"ok": True, "status": "up"}


@app.get("/api/users")
def list_users(role: str | None = Query(default=None)):
    return [user.as_dict() for user in container.users.list_users(role or None)]


@app.post("/api/signup", status_code=201)
def signup(payload: SignupRequest):
    username = _clean(payload.username)
    password = _clean(payload.password)
    if not username:
        raise HTTPException(status_code=400, detail="Username is required")
    if not password:
        raise HTTPException(status_code=400, detail="Password is required")
    try:
        user = container.users.create_user(username, password, ROLE_PATIENT)
    except DuplicateUsernameError as exc:
        raise HTTPException(status_code=409, detail="Username already taken") from exc
    return user.as_dict()


@app.post("/api/login")
def login(payload: LoginRequest):
    username = _clean(payload.username)
    password = _clean(payload.password)
    if not username or not password:
        raise HTTPException(status_code=400, detail="Username and password are required")
    user = container.users.authenticate(username, password)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    return user.as_dict()


@app.get("/api/consultations")
def list_consultations(
    user_id: str | None = Query(default=None, alias="userId"),
    role: str | None = Query(default=None),
):
    if not user_id or not role:
        raise HTTPException(status_code=400, detail="userId and role are required")
    return [record.as_dict() for record in container.controller.list_for(user_id, role)]


@app.post("/api/consultations", status_code=201)
def create_consultation(payload: CreateConsultationRequest):
    patient_id = _clean(payload.patient_id)
    if not patient_id:
        raise HTTPException(status_code=400, detail="patientId is required")
    return container.controller.create(patient_id).as_dict()


@app.post("/api/consultations/{consultation_id}/submit")
def submit_consultation(consultation_id: str, payload: SubmitRequest | None = None):
    doctor_id = _clean(payload.doctor_id) if payload else ""
    return container.controller.submit(consultation_id, doctor_id or None).as_dict()


@app.post("/api/consultations/{consultation_id}/close")
def close_consultation(consultation_id: str):
    return container.controller.close(consultation_id).as_dict()


@app.delete("/api/consultations/{consultation_id}")
def delete_consultation(consultation_id: str):
    return {"id": container.controller.delete(consultation_id)}


@app.get("/api/consultations/{consultation_id}/messages")
def list_messages(consultation_id: str):
    return [message.as_dict() for message in container.controller.list_messages(consultation_id)]


@app.post("/api/consultations/{consultation_id}/messages", status_code=201)
def send_message(consultation_id: str, payload: MessageRequest):
    sender_role = _clean(payload.sender_role)
    content = _clean(payload.content)
    if not sender_role or not content:
        raise HTTPException(status_code=400, detail="senderRole and content are required")
    outcome = container.controller.send_message(
        consultation_id,
        sender_id=_clean(payload.sender_id) or None,
        sender_role=sender_role,
        content=content,
        doctor_id=_clean(payload.doctor_id) or None,
    )
    return outcome.as_envelope()


@app.post("/api/consultations/{consultation_id}/ai", status_code=201)
def request_ai(consultation_id: str, payload: AiRequest):
    patient_id = _clean(payload.patient_id)
    complaint = _clean(payload.complaint)
    if not patient_id or not complaint:
        raise HTTPException(status_code=400, detail="patientId and complaint are required")
    exchange = container.controller.request_ai(consultation_id, patient_id=patient_id, complaint=complaint)
    if exchange.degraded:
        logger.warning("AI exchange on %s returned transient messages: %s", consultation_id, exchange.degraded)
    return exchange.as_envelope()


@app.get("/api/ai/meta")
def ai_meta():
    return container.responder.meta()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
