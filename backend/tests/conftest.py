import os

# Keep the app's own engine off disk; tests use test_engine below
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from brackets.database import get_session  # noqa: E402
from brackets.main import app  # noqa: E402
from brackets.models.team import Team  # noqa: E402
from brackets.services.progression import submit_score  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share the same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. Tables dropped and recreated per test so ids and uniqueness start clean
# 4. App dependency overridden to use test_engine (see client_fixture)
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

WIN_SETS = [{"team1": 6, "team2": 2}, {"team1": 6, "team2": 3}]
LOSS_SETS = [{"team1": 2, "team2": 6}, {"team1": 3, "team2": 6}]


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    from brackets.models.bracket import Bracket  # noqa: F401
    from brackets.models.match import Match  # noqa: F401
    from brackets.models.standing import Standing  # noqa: F401
    from brackets.models.team import TeamWithdrawal  # noqa: F401

    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def make_teams(session: Session):
    """Factory: register `count` teams in a tournament category, returned as ids in seed order."""

    def _make(count: int, tournament_id: int = 1, category_id: int = 1):
        teams = [
            Team(
                tournament_id=tournament_id,
                category_id=category_id,
                name=f"Team {i + 1}",
                player1_id=f"t{tournament_id}c{category_id}-p{i + 1}a",
                player2_id=f"t{tournament_id}c{category_id}-p{i + 1}b",
            )
            for i in range(count)
        ]
        for t in teams:
            session.add(t)
        session.commit()
        for t in teams:
            session.refresh(t)
        return [t.id for t in teams]

    return _make


@pytest.fixture
def win():
    """Score a match 6-2 6-3 for the given side (organizer path)."""

    def _win(session: Session, match_id: int, side: int = 1, **kwargs):
        return submit_score(session, match_id, WIN_SETS if side == 1 else LOSS_SETS, **kwargs)

    return _win
