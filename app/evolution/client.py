"""
File: app/evolution/client.py

Project: Evolution WhatsApp Console

Purpose:
Evolution API (WhatsApp gateway) REST client.
One method per gateway capability:
- create_instance
- connect            (QR pairing artifact, or an already-open state)
- connection_state
- logout
- delete
- send_text

Design rules:
- Stateless: every call is one HTTP request carrying the apikey header
- No retries here; retry policy belongs to the caller
- Non-2xx, an embedded "error" field, or a transport failure -> GatewayError
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from app.config import EvolutionSettings
from app.errors import GatewayError

logger = logging.getLogger("evolution_client")


def _error_message(data: Any, status_code: int) -> str:
    """
    Evolution error bodies come in a few shapes:
    - {"message": "..."}
    - {"status": 404, "error": "Not Found", "response": {"message": ["..."]}}
    """
    if isinstance(data, dict):
        message = data.get("message")
        if not message and isinstance(data.get("response"), dict):
            message = data["response"].get("message")
        if isinstance(message, list):
            message = "; ".join(str(m) for m in message)
        if not message and isinstance(data.get("error"), str):
            message = data["error"]
        if message:
            return str(message)
    return f"Evolution API error: {status_code}"


class EvolutionClient:
    def __init__(
        self,
        settings: EvolutionSettings,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()

    # ---------------------------------------------------------
    # Transport
    # ---------------------------------------------------------
    def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self._settings.url(endpoint)
        headers = {
            "apikey": self._settings.api_key,
            "Content-Type": "application/json",
        }

        logger.info("[Evolution API] Calling: %s %s", method, url)

        try:
            resp = self._session.request(
                method,
                url,
                json=payload,
                headers=headers,
                timeout=self._settings.timeout_seconds,
            )
        except requests.RequestException as e:
            raise GatewayError(f"Evolution API unreachable: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = {"raw_text": resp.text}

        logger.info("[Evolution API] Response: %s %s", resp.status_code, url)

        if not 200 <= resp.status_code < 300:
            raise GatewayError(
                _error_message(data, resp.status_code),
                status_code=resp.status_code,
                payload=data,
            )

        if isinstance(data, dict) and data.get("error"):
            raise GatewayError(
                _error_message(data, resp.status_code),
                status_code=resp.status_code,
                payload=data,
            )

        return data

    @staticmethod
    def _path(name: str) -> str:
        return quote(name, safe="")

    # ---------------------------------------------------------
    # Instance lifecycle
    # ---------------------------------------------------------
    def create_instance(self, name: str) -> Any:
        return self._request(
            "POST",
            "/instance/create",
            {
                "instanceName": name,
                "qrcode": True,
                "integration": self._settings.integration,
            },
        )

    def connect(self, name: str) -> Any:
        return self._request("GET", f"/instance/connect/{self._path(name)}")

    def connection_state(self, name: str) -> Any:
        return self._request("GET", f"/instance/connectionState/{self._path(name)}")

    def logout(self, name: str) -> Any:
        return self._request("DELETE", f"/instance/logout/{self._path(name)}")

    def delete(self, name: str) -> Any:
        return self._request("DELETE", f"/instance/delete/{self._path(name)}")

    # ---------------------------------------------------------
    # Messaging
    # ---------------------------------------------------------
    def send_text(self, name: str, *, to_phone: str, body: str) -> Any:
        if not body:
            raise GatewayError("Message text cannot be empty")

        return self._request(
            "POST",
            f"/message/sendText/{self._path(name)}",
            {"number": to_phone, "text": body},
        )
