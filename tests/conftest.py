"""
Pytest fixtures for testing
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from capling.application.errors import UpstreamError
from capling.domain.classification import Classification, ClassificationResult, JustificationVerdict
from capling.infrastructure.db.models import User
from capling.infrastructure.db.session import Base
from capling.infrastructure.llm.contracts import JustificationEvaluator, TransactionClassifier


@pytest.fixture
def db_engine():
    """In-memory SQLite engine for tests, with JSONB→JSON mapping."""
    # StaticPool: one connection shared by the test and TestClient threads
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite doesn't support JSONB
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def user_id(db_session) -> int:
    user = User(email="pat@example.com", is_admin=False)
    db_session.add(user)
    db_session.commit()
    return user.id


@pytest.fixture
def admin_id(db_session) -> int:
    user = User(email="admin@example.com", is_admin=True)
    db_session.add(user)
    db_session.commit()
    return user.id


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------

class FakeClassifier(TransactionClassifier):
    """Returns classifications by merchant; raises UpstreamError when failing=True."""

    def __init__(self, by_merchant: dict[str, Classification] | None = None,
                 default: Classification = Classification.RESPONSIBLE):
        self.by_merchant = by_merchant or {}
        self.default = default
        self.failing = False
        self.calls = []

    def classify(self, merchant, amount, description, account_balance=None) -> ClassificationResult:
        self.calls.append((merchant, amount, description, account_balance))
        if self.failing:
            raise UpstreamError("classifier timed out")
        classification = self.by_merchant.get(merchant, self.default)
        return ClassificationResult(
            classification=classification,
            reflection=f"{merchant} looks {classification.value}",
            confidence=0.8,
            reasoning="fake",
        )


class FakeEvaluator(JustificationEvaluator):
    """Accepts or rejects every justification; raises UpstreamError when failing=True."""

    def __init__(self, is_valid: bool = True, new_reflection: str | None = "Fair enough!"):
        self.is_valid = is_valid
        self.new_reflection = new_reflection
        self.failing = False
        self.calls = []

    def evaluate(self, merchant, amount, description, justification_text,
                 original_classification) -> JustificationVerdict:
        self.calls.append((merchant, amount, justification_text, original_classification))
        if self.failing:
            raise UpstreamError("evaluator timed out")
        return JustificationVerdict(
            is_valid=self.is_valid,
            reasoning="accepted" if self.is_valid else "not convincing",
            new_reflection=self.new_reflection if self.is_valid else None,
        )


@pytest.fixture
def classifier() -> FakeClassifier:
    return FakeClassifier(by_merchant={
        "Amazon": Classification.IRRESPONSIBLE,
        "Steam": Classification.NEUTRAL,
    })


@pytest.fixture
def evaluator() -> FakeEvaluator:
    return FakeEvaluator()


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client(db_engine, user_id, classifier, evaluator):
    """
    TestClient with DB/collaborator overrides.

    The current user is client.current_user["id"]; reassign it to act as
    another user.
    """
    from fastapi import Depends

    from capling.api.deps import get_classifier, get_current_user, get_db, get_evaluator
    from capling.main import app

    SessionLocal = sessionmaker(bind=db_engine, autoflush=False)
    current_user = {"id": user_id}

    def _get_db():
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def _get_current_user(db: Session = Depends(get_db)) -> User:
        return db.get(User, current_user["id"])

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = _get_current_user
    app.dependency_overrides[get_classifier] = lambda: classifier
    app.dependency_overrides[get_evaluator] = lambda: evaluator

    client = TestClient(app)
    client.current_user = current_user
    try:
        yield client
    finally:
        app.dependency_overrides.clear()

