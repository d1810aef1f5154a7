"""
Pytest configuration and fixtures.

Each test gets a fresh in-memory SQLite database with the full schema,
a company with one user profile, and a mocked Evolution gateway.
"""
import uuid
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.evolution.client import EvolutionClient
from app.models import Base, Company, Profile, WhatsAppInstance


@pytest.fixture(scope="function")
def test_db():
    """In-memory database shared across threads (TestClient runs sync routes in a pool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture(scope="function")
def company(test_db):
    row = Company(name="Acme Ltda")
    test_db.add(row)
    test_db.commit()
    test_db.refresh(row)
    return row


@pytest.fixture(scope="function")
def other_company(test_db):
    row = Company(name="Outra Empresa")
    test_db.add(row)
    test_db.commit()
    test_db.refresh(row)
    return row


@pytest.fixture(scope="function")
def profile(test_db, company):
    row = Profile(id=uuid.uuid4(), company_id=company.id, full_name="Agent", email="agent@acme.test")
    test_db.add(row)
    test_db.commit()
    test_db.refresh(row)
    return row


@pytest.fixture(scope="function")
def instance(test_db, company):
    row = WhatsAppInstance(company_id=company.id, instance_name="acme-main", status="disconnected")
    test_db.add(row)
    test_db.commit()
    test_db.refresh(row)
    return row


@pytest.fixture(scope="function")
def gateway():
    """Evolution client double; every method returns an empty payload unless a test says otherwise."""
    mock = MagicMock(spec=EvolutionClient)
    for name in ("create_instance", "connect", "connection_state", "logout", "delete", "send_text"):
        getattr(mock, name).return_value = {}
    return mock
