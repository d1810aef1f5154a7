"""
Health check endpoints
Used by the deployment platform + ops
"""

import logging

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from app.db import test_db_connection

router = APIRouter(prefix="/health", tags=["health"])
logger = logging.getLogger("health")


@router.get("")
def health_check():
    return {"status": "healthy"}


@router.get("/db")
def db_health_check():
    try:
        test_db_connection()
        return {"database": "healthy"}
    except (SQLAlchemyError, RuntimeError) as e:
        logger.warning("Database health check failed: %s", e)
        return {"database": "unhealthy", "error": str(e)}
