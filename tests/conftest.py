from __future__ import annotations

import os

import pytest

import teamhealth.db as app_db
from teamhealth.models import HealthDimension, HierarchyLevel, Team, User
from teamhealth.seed import DEFAULT_LEVELS, default_dimension_rows

os.environ.setdefault("TEAM_MEMBER_LEVEL_ID", "level-5")


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'teamhealth_test.db'}")

    # Each test owns a throwaway SQLite file; the module-level engine is swapped for it.
    app_db.engine.dispose()
    app_db.DATABASE_URL = app_db.get_database_url()
    app_db.engine = app_db.make_engine(app_db.DATABASE_URL)
    app_db.SessionLocal = app_db.make_session_factory(app_db.engine)

    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture
def db():
    session = app_db.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded_db(db):
    db.add_all(HierarchyLevel(**row) for row in DEFAULT_LEVELS)
    db.add_all(HealthDimension(**row) for row in default_dimension_rows())
    db.commit()
    return db


def add_user(db, user_id: str, level_id: str = "level-5", reports_to: str | None = None) -> User:
    user = User(
        id=user_id,
        username=user_id,
        email=f"{user_id}@example.com",
        full_name=user_id.title(),
        hierarchy_level_id=level_id,
        reports_to=reports_to,
    )
    db.add(user)
    db.commit()
    return user


def add_team(db, team_id: str, name: str, team_lead_id: str | None = None) -> Team:
    team = Team(id=team_id, name=name, team_lead_id=team_lead_id, cadence="monthly")
    db.add(team)
    db.commit()
    return team
