# app/evolution/__init__.py
from .client import EvolutionClient
from .factory import get_evolution_client
