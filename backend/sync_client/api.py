from __future__ import annotations

import json
from typing import Any

import httpx


class ApiError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error_message(response: httpx.Response) -> str:
    message = f"Request failed ({response.status_code})"
    raw = response.text or ""
    if not raw:
        return message
    try:
        parsed = json.loads(raw)
    except ValueError:
        return message if raw.strip().startswith("<") else raw
    if isinstance(parsed, dict):
        for key in ("error", "message"):
            value = parsed.get(key)
            if isinstance(value, str) and value:
                return value
    return message


class MedikitApiClient:
    """Thin JSON client for the ``/api`` routes.

    Pass ``http`` to reuse an existing ``httpx.Client`` (for example a
    FastAPI ``TestClient``); otherwise one is created for ``base_url``.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        http: httpx.Client | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout_seconds)

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "MedikitApiClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, *, params: dict[str, Any] | None = None, body: Any = None) -> Any:
        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = {key: value for key, value in params.items() if value is not None}
        if body is not None:
            kwargs["json"] = body
        response = self._http.request(method, f"/api{path}", **kwargs)
        if response.status_code >= 400:
            raise ApiError(response.status_code, _error_message(response))
        return response.json()

    def get_users(self, role: str | None = None) -> list[dict[str, Any]]:
        return self._request("GET", "/users", params={"role": role})

    def sign_up(self, username: str, password: str) -> dict[str, Any]:
        return self._request("POST", "/signup", body={"username": username, "password": password})

    def login(self, username: str, password: str) -> dict[str, Any]:
        return self._request("POST", "/login", body={"username": username, "password": password})

    def get_consultations(self, user_id: str, role: str) -> list[dict[str, Any]]:
        return self._request("GET", "/consultations", params={"userId": user_id, "role": role})

    def create_consultation(self, patient_id: str) -> dict[str, Any]:
        return self._request("POST", "/consultations", body={"patientId": patient_id})

    def submit_consultation(self, consultation_id: str, doctor_id: str | None = None) -> dict[str, Any]:
        return self._request("POST", f"/consultations/{consultation_id}/submit", body={"doctorId": doctor_id})

    def close_consultation(self, consultation_id: str) -> dict[str, Any]:
        return self._request("POST", f"/consultations/{consultation_id}/close")

    def delete_consultation(self, consultation_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/consultations/{consultation_id}")

    def list_messages(self, consultation_id: str) -> list[dict[str, Any]]:
        return self._request("GET", f"/consultations/{consultation_id}/messages")

    def send_message(
        self,
        consultation_id: str,
        *,
        sender_id: str | None,
        sender_role: str,
        content: str,
    ) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/consultations/{consultation_id}/messages",
            body={"senderId": sender_id, "senderRole": sender_role, "content": content},
        )

    def request_ai_response(self, consultation_id: str, *, patient_id: str, complaint: str) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/consultations/{consultation_id}/ai",
            body={"patientId": patient_id, "complaint": complaint},
        )

    def get_ai_meta(self) -> dict[str, Any]:
        return self._request("GET", "/ai/meta")
