from __future__ import annotations

import importlib
import sys
from pathlib import Path
from typing import Callable

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))


@pytest.fixture
def backend_module(tmp_path, monkeypatch):
    db_path = tmp_path / "medikit-test.sqlite"
    monkeypatch.setenv("MEDIKIT_DB_PATH", str(db_path))
    monkeypatch.setenv("MEDIKIT_SKIP_SEED", "false")
    # Empty rather than unset so a developer .env cannot switch on real Gemini calls.
    monkeypatch.setenv("GEMINI_API_KEY", "")

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def login(client) -> Callable[[str, str], dict]:
    def _login(username: str, password: str) -> dict:
        response = client.post("/api/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return response.json()

    return _login


@pytest.fixture
def patient(login) -> dict:
    return login("ayu", "pasien123")


@pytest.fixture
def default_doctor(client) -> dict:
    return client.get("/api/users", params={"role": "doctor"}).json()[0]


@pytest.fixture
def new_consultation(client, patient) -> Callable[[], dict]:
    def _create() -> dict:
        response = client.post("/api/consultations", json={"patientId": patient["id"]})
        assert response.status_code == 201, response.text
        return response.json()

    return _create
