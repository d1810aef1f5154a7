"""
File: app/admin/__init__.py

Project: Evolution WhatsApp Console

Purpose:
Admin package for tenant-scoped operator endpoints.

Design rules:
- Every query is filtered by the caller's company
- Gateway-touching commands live in app.commands, not here
"""

from .routes import router as admin_router
