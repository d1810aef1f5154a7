"""
File: app/errors.py

Project: Evolution WhatsApp Console

Purpose:
Error taxonomy shared by the command proxy, the webhook ingestor and
the HTTP layer.

- ValidationError: missing or malformed argument (caller-fixable)
- GatewayError:    the Evolution gateway rejected or failed a call
- NotFoundError:   a referenced local entity does not exist
- StoreError:      local persistence failure
- AuthError:       no authenticated principal, or principal without a company
"""

from __future__ import annotations

from typing import Any, Optional


class CoreError(RuntimeError):
    pass


class ValidationError(CoreError):
    pass


class NotFoundError(CoreError):
    pass


class StoreError(CoreError):
    pass


class AuthError(CoreError):
    pass


class GatewayError(CoreError):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404
