"""Shared fixtures: one app per run, one rolled-back transaction per test.

Application code commits through the Unit of Work; with
``join_transaction_mode="create_savepoint"`` those commits only release a
SAVEPOINT inside the outer transaction opened here, which is rolled back
when the test ends.
"""

from __future__ import annotations

import os

import pytest
from sqlalchemy.orm import scoped_session, sessionmaker

from sessionauth.core.config import TestingConfig
from sessionauth.core.extensions import db as _db
from sessionauth.factory import create_app


@pytest.fixture(scope="session")
def app():
    os.environ.pop("DATABASE_URL", None)
    app = create_app(TestingConfig, instance_relative_config=False)
    app.logger.setLevel("WARNING")
    return app


@pytest.fixture(scope="session")
def db(app):
    """Create the schema once; the app context stays pushed for the whole run."""
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="session")
def connection(db):
    conn = db.engine.connect()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture()
def session(db, connection):
    """Scoped session on the shared connection, swapped in for ``db.session``."""
    outer = connection.begin()
    scoped = scoped_session(
        sessionmaker(bind=connection, join_transaction_mode="create_savepoint", autoflush=False)
    )

    original = db.session
    db.session = scoped
    try:
        yield scoped
    finally:
        scoped.remove()
        db.session = original
        outer.rollback()


@pytest.fixture(autouse=True)
def _factories_session(session):
    from tests.factories import SQLAlchemySession

    SQLAlchemySession.set(session)
    yield
    SQLAlchemySession.set(None)


@pytest.fixture(scope="session")
def faker():
    """Seeded :class:`faker.Faker` so generated data is stable between runs."""
    from faker import Faker

    Faker.seed(1337)
    return Faker()


@pytest.fixture()
def client(app, session):
    return app.test_client()


@pytest.fixture()
def user(session):
    """A persisted ``user@example.com`` whose password is ``DEFAULT_PASSWORD``."""
    from tests.factories.user import UserFactory

    account = UserFactory(email="user@example.com")
    session.flush()
    return account


@pytest.fixture()
def auth_service(app, session):
    """The service exactly as the HTTP layer builds it (SQL store, real JWT codec)."""
    from sessionauth.api.deps import get_auth_service

    return get_auth_service()
