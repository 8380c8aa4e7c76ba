from __future__ import annotations

import pytest

from storage import DuplicateUsernameError, SQLiteDB, UserDirectory
from storage.user_directory import DEMO_DOCTORS, DEMO_PATIENTS


@pytest.fixture
def directory(tmp_path) -> UserDirectory:
    return UserDirectory(SQLiteDB(str(tmp_path / "users.sqlite")))


def test_signup_creates_patient(client):
    response = client.post("/api/signup", json={"username": "  citra ", "password": "rahasia"})
    assert response.status_code == 201
    body = response.json()
    assert body["username"] == "citra"
    assert body["name"] == "citra"
    assert body["role"] == "patient"
    assert "passwordHash" not in body
    assert "password_hash" not in body

    login = client.post("/api/login", json={"username": "citra", "password": "rahasia"})
    assert login.status_code == 200
    assert login.json()["id"] == body["id"]


def test_signup_validation_and_duplicates(client):
    assert client.post("/api/signup", json={"password": "x"}).json() == {"error": "Username is required"}
    assert client.post("/api/signup", json={"username": "dina"}).json() == {"error": "Password is required"}

    duplicate = client.post("/api/signup", json={"username": "ayu", "password": "baru"})
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": "Username already taken"}


def test_login_rejects_bad_credentials(client):
    missing = client.post("/api/login", json={"username": "ayu"})
    assert missing.status_code == 400
    assert missing.json()["error"] == "Username and password are required"

    wrong = client.post("/api/login", json={"username": "ayu", "password": "salah"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid username or password"}

    unknown = client.post("/api/login", json={"username": "nobody", "password": "pasien123"})
    assert unknown.status_code == 401


def test_demo_doctor_can_login(login):
    doctor = login("drmaya", "dokter123")
    assert doctor["role"] == "doctor"
    assert doctor["name"] == "Dr. Maya Pratama - Spesialis Penyakit Dalam"


def test_users_listing_filters_by_role(client):
    doctors = client.get("/api/users", params={"role": "doctor"}).json()
    patients = client.get("/api/users", params={"role": "patient"}).json()
    everyone = client.get("/api/users").json()

    assert len(doctors) == len(DEMO_DOCTORS)
    assert {item["username"] for item in patients} == {entry["username"] for entry in DEMO_PATIENTS}
    assert len(everyone) == len(doctors) + len(patients)
    assert [item["name"] for item in doctors] == sorted(item["name"] for item in doctors)
    assert all("passwordHash" not in item for item in everyone)


def test_seed_is_idempotent(directory):
    first = directory.seed_if_needed()
    assert first == {"inserted": len(DEMO_DOCTORS) + len(DEMO_PATIENTS), "renamed": 0}
    assert directory.seed_if_needed() == {"inserted": 0, "renamed": 0}
    assert len(directory.list_users()) == len(DEMO_DOCTORS) + len(DEMO_PATIENTS)


def test_seed_restores_doctor_specialty_names(directory):
    directory.seed_if_needed()
    maya = next(user for user in directory.list_users("doctor") if user.username == "drmaya")
    directory.rename_user(maya.id, "Dr. Maya")

    assert directory.seed_if_needed() == {"inserted": 0, "renamed": 1}
    assert directory.find_user(maya.id).name == "Dr. Maya Pratama - Spesialis Penyakit Dalam"


def test_seed_keeps_custom_specialty_names(directory):
    directory.seed_if_needed()
    rafi = next(user for user in directory.list_users("doctor") if user.username == "drrafi")
    directory.rename_user(rafi.id, "Dr. Rafi, Sp.KK")

    assert directory.seed_if_needed()["renamed"] == 0
    assert directory.find_user(rafi.id).name == "Dr. Rafi, Sp.KK"


def test_default_doctor_is_first_by_name(directory):
    assert directory.default_doctor() is None
    directory.seed_if_needed()
    assert directory.default_doctor().username == "drandi"


def test_create_user_rules(directory):
    user = directory.create_user("eka", "secret", "patient", name="Eka Putri", age=30, gender="Perempuan")
    assert directory.authenticate("eka", "secret") == user
    assert directory.authenticate("eka", "wrong") is None

    with pytest.raises(DuplicateUsernameError):
        directory.create_user("eka", "other", "patient")
    with pytest.raises(ValueError):
        directory.create_user("fajar", "secret", "admin")
