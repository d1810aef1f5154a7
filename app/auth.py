"""
File: app/auth.py

Project: Evolution WhatsApp Console

Purpose:
Authenticated principal + tenant resolution.

Tokens are issued by the managed backend's identity provider (HS256,
shared secret). The "sub" claim is the user id; the user's profile row
names the owning company.

Design rules:
- Every tenant-scoped route depends on get_company_id
- A principal without a company is rejected
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import AuthSettings, load_auth_settings
from app.db import get_db
from app.errors import AuthError, StoreError
from app.models import Profile


@dataclass(frozen=True)
class Principal:
    user_id: UUID
    email: Optional[str] = None


def decode_principal(token: str, settings: AuthSettings) -> Principal:
    options = {"verify_aud": settings.jwt_audience is not None}
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as e:
        raise AuthError("Unauthorized") from e

    try:
        user_id = UUID(str(claims.get("sub")))
    except ValueError as e:
        raise AuthError("Unauthorized") from e

    return Principal(user_id=user_id, email=claims.get("email"))


def resolve_tenant(db: Session, principal: Principal) -> UUID:
    try:
        profile = db.query(Profile).filter(Profile.id == principal.user_id).one_or_none()
    except SQLAlchemyError as e:
        db.rollback()
        raise StoreError(f"Could not load profile: {e}") from e

    if not profile or not profile.company_id:
        raise AuthError("User has no company")
    return profile.company_id


# -------------------------------------------------------------------
# FastAPI dependencies
# -------------------------------------------------------------------
def get_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    if not authorization:
        raise AuthError("Missing authorization header")

    token = authorization.replace("Bearer ", "", 1).strip()
    if not token:
        raise AuthError("Unauthorized")

    return decode_principal(token, load_auth_settings())


def get_company_id(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
) -> UUID:
    return resolve_tenant(db, principal)
