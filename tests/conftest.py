import random

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import phishtrainer.models  # noqa: F401
from phishtrainer.core.generators import MockContentGenerator
from phishtrainer.core.ml_classifier import NoopClassifier
from phishtrainer.database import Base, get_db
from phishtrainer.main import create_app
from phishtrainer.schemas import ValidatedItem
from phishtrainer.services.content_repository import SqlContentRepository


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repository(db_session):
    return SqlContentRepository(db_session)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_item():
    def _make(subject="Quarterly report", sender_email="reports@acme-corp.com",
              is_phish=False, difficulty=1, features=None, **overrides):
        data = {
            "subject": subject,
            "sender_name": "Acme Reports",
            "sender_email": sender_email,
            "body_markup": "<p>The quarterly report is ready.</p>",
            "is_phish": is_phish,
            "explanation": "Routine internal report.",
            "features": features if features is not None else ["Routine"],
            "difficulty": difficulty,
        }
        data.update(overrides)
        return ValidatedItem(**data)
    return _make


@pytest.fixture
def client(session_factory):
    app = create_app(generator=MockContentGenerator(), classifier=NoopClassifier(), init_database=False)
    app.state.rng = random.Random(7)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
