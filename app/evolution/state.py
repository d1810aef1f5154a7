"""
Connection-state translation.

The gateway reports a free-form state token ("open", "close",
"connecting", ...). Locally an instance is only ever connected or
disconnected: "open" is connected, anything else (including no token at
all) is disconnected.
"""

from __future__ import annotations

from typing import Any, Optional

from app.models import INSTANCE_CONNECTED, INSTANCE_DISCONNECTED

STATE_OPEN = "open"


def extract_state(payload: Any) -> Optional[str]:
    """
    Pull the state token out of a gateway payload.

    Accepts the flat shape ({"state": "open"}), the webhook shape
    ({"state": ...} or {"status": ...}) and the nested connectionState
    shape ({"instance": {"state": "open"}}).
    """
    if not isinstance(payload, dict):
        return None

    state = payload.get("state") or payload.get("status")
    if state is None and isinstance(payload.get("instance"), dict):
        state = payload["instance"].get("state")

    return state if isinstance(state, str) else None


def translate_state(state: Optional[str]) -> str:
    return INSTANCE_CONNECTED if state == STATE_OPEN else INSTANCE_DISCONNECTED


def is_open(payload: Any) -> bool:
    return extract_state(payload) == STATE_OPEN
