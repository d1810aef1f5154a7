"""
File: app/main.py

Project: Evolution WhatsApp Console

Purpose:
Application entry point.
Responsible only for:
- FastAPI app creation
- Logging setup
- Router registration
- Mapping core errors to JSON error responses

Design principles:
- No business logic in this file
- No database access
- Command handling is delegated to app.commands
- Webhook handling is delegated to app.webhooks
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.admin.routes import router as admin_router
from app.commands import router as commands_router
from app.config import LOG_LEVEL
from app.errors import (
    AuthError,
    CoreError,
    GatewayError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from app.health import router as health_router
from app.webhooks import router as webhooks_router

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger("main")

app = FastAPI(title="Evolution WhatsApp Console")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

# -------------------------------------------------------------------
# Routes
# -------------------------------------------------------------------
app.include_router(commands_router)
app.include_router(webhooks_router)
app.include_router(admin_router)
app.include_router(health_router)


# -------------------------------------------------------------------
# Errors -> {"error": message}
# -------------------------------------------------------------------
def _status_for(exc: CoreError) -> int:
    if isinstance(exc, AuthError):
        return 401
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, GatewayError):
        return 404 if exc.is_not_found else 502
    if isinstance(exc, StoreError):
        return 500
    return 400


@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error("[%s] %s: %s", request.url.path, type(exc).__name__, exc)
    else:
        logger.info("[%s] %s: %s", request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("[%s] unhandled store failure: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Database error"})
