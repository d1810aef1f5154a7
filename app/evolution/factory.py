"""
File: app/evolution/factory.py

Project: Evolution WhatsApp Console

Purpose:
- Single place to construct the Evolution gateway client
- Reuse one client (and its HTTP connection pool) per process

Design rules:
- No business logic here
- Only construction / wiring
"""

from __future__ import annotations

from app.config import load_evolution_settings
from app.evolution.client import EvolutionClient

_evolution_client: EvolutionClient | None = None


def get_evolution_client() -> EvolutionClient:
    global _evolution_client
    if _evolution_client is None:
        _evolution_client = EvolutionClient(settings=load_evolution_settings())
    return _evolution_client
