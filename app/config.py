"""
File: app/config.py

Project: Evolution WhatsApp Console

Purpose:
Application configuration.
Environment-driven; every value is read once when first requested.

Notes:
- Required:
  - DATABASE_URL
  - EVOLUTION_API_URL
  - EVOLUTION_API_KEY
  - AUTH_JWT_SECRET
- Optional:
  - EVOLUTION_TIMEOUT_SECONDS (defaults to 30)
  - EVOLUTION_INTEGRATION (defaults to WHATSAPP-BAILEYS)
  - AUTH_JWT_ALGORITHM (defaults to HS256)
  - AUTH_JWT_AUDIENCE (unset disables the audience check)
  - LOG_LEVEL (defaults to INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _require_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise RuntimeError(
            f"Missing required environment variable: {name}. "
            f"Set it in your .env / deployment / shell before running."
        )
    return value


# -------------------------------------------------
# Database
# -------------------------------------------------
def load_database_url() -> str:
    url = _require_env("DATABASE_URL")
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


# -------------------------------------------------
# Evolution gateway
# -------------------------------------------------
@dataclass(frozen=True)
class EvolutionSettings:
    api_url: str
    api_key: str
    timeout_seconds: float = 30.0
    integration: str = "WHATSAPP-BAILEYS"

    def url(self, endpoint: str) -> str:
        return f"{self.api_url}{endpoint}"


@lru_cache(maxsize=1)
def load_evolution_settings() -> EvolutionSettings:
    return EvolutionSettings(
        api_url=_require_env("EVOLUTION_API_URL").rstrip("/"),
        api_key=_require_env("EVOLUTION_API_KEY"),
        timeout_seconds=float(os.getenv("EVOLUTION_TIMEOUT_SECONDS", "30")),
        integration=os.getenv("EVOLUTION_INTEGRATION", "WHATSAPP-BAILEYS").strip(),
    )


# -------------------------------------------------
# Auth (tokens issued by the managed backend)
# -------------------------------------------------
@dataclass(frozen=True)
class AuthSettings:
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_audience: Optional[str] = None


@lru_cache(maxsize=1)
def load_auth_settings() -> AuthSettings:
    return AuthSettings(
        jwt_secret=_require_env("AUTH_JWT_SECRET"),
        jwt_algorithm=os.getenv("AUTH_JWT_ALGORITHM", "HS256").strip(),
        jwt_audience=os.getenv("AUTH_JWT_AUDIENCE", "").strip() or None,
    )


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
