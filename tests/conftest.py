"""Shared fixtures: in-memory SQLite database, stores and seed data."""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from odp_core import models, schemas
from odp_core.context import build_store_context
from odp_core.database import Base, enable_sqlite_foreign_keys

ACTOR = "tester"


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def stores():
    return build_store_context()


@pytest.fixture
def waves(db, stores):
    """Waves 2027.1, 2027.2 and 2027.3 keyed by name."""
    created = {}
    for quarter, month in ((1, 1), (2, 4), (3, 7)):
        wave = stores.waves.create(
            db, schemas.WaveCreate(year=2027, quarter=quarter, date=date(2027, month, 1)), ACTOR
        )
        created[wave.name] = wave
    db.commit()
    return created


@pytest.fixture
def make_requirement(db, stores):
    """Factory creating a requirement; keyword arguments go to RequirementCreate."""

    def _make(title, type=models.RequirementType.OR, **fields):
        requirement = stores.requirements.create(
            db, schemas.RequirementCreate(title=title, type=type, **fields), ACTOR
        )
        db.commit()
        return requirement

    return _make


@pytest.fixture
def make_change(db, stores):
    """Factory creating a change; keyword arguments go to ChangeCreate."""

    def _make(title, **fields):
        change = stores.changes.create(db, schemas.ChangeCreate(title=title, **fields), ACTOR)
        db.commit()
        return change

    return _make


@pytest.fixture
def make_taxonomy(db, stores):
    """Factory creating a taxonomy entity of a given kind."""

    def _make(kind, name, parent_id=None):
        entity = stores.taxonomy(kind).create(
            db, schemas.TaxonomyEntityCreate(name=name, parent_id=parent_id), ACTOR
        )
        db.commit()
        return entity

    return _make


@pytest.fixture
def client(engine, session_factory):
    """TestClient bound to the in-memory database."""
    from fastapi.testclient import TestClient

    from odp_core.api.main import app
    from odp_core.database import get_db

    def override_get_db():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, headers={"X-User-Id": ACTOR}) as test_client:
        yield test_client
    app.dependency_overrides.clear()
