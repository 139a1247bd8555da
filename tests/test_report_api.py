from __future__ import annotations

import datetime as dt
import os
import pathlib
import sys

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_ENABLED", "false")

ROOT = pathlib.Path(__file__).resolve().parents[1]
BACKEND_PATH = ROOT / "src" / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from timesbot.api import deps
from timesbot.db.base import Base
from timesbot.main import app
from timesbot.models import CurrentTask, DoneTask
from timesbot.services.accounting import CompletedTask, Owner
from timesbot.services.report_context import ReportContextStore
from timesbot.services.session_store import SessionStore

OWNER = Owner(team_id="T1", user_id="U1")
NOW = dt.datetime(2024, 6, 15, 3, 0, tzinfo=dt.timezone.utc)
TABLES = [CurrentTask.__table__, DoneTask.__table__]


def _setup_db():
    engine = create_engine(
        "sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(engine, tables=TABLES)
    TestingSession = sessionmaker(bind=engine, expire_on_commit=False)
    return engine, TestingSession


def _done(name: str, days_ago: int, minutes: int) -> CompletedTask:
    start = NOW - dt.timedelta(days=days_ago)
    return CompletedTask(owner=OWNER, task_name=name, start_time=start, end_time=start + dt.timedelta(minutes=minutes))


def test_report_renders_every_window() -> None:
    engine, TestingSession = _setup_db()
    contexts = ReportContextStore(clock=lambda: NOW)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: (lambda: NOW)
    app.dependency_overrides[deps.get_report_contexts] = lambda: contexts
    client = TestClient(app)

    with TestingSession() as session:
        SessionStore(session).add_all(
            [
                _done("write docs", 1, 30),
                _done("review", 2, 90),
                _done("planning", 40, 60),
                _done("ancient", 400, 60),
            ]
        )
    token = contexts.create_context(OWNER).id

    try:
        response = client.get(f"/report/{token}")
        assert response.status_code == 200
        report = response.json()
        assert report["error_message"] is None
        assert report["last_week"] == [
            {"task_name": "review", "total_time": "1.5h", "total_ms": 90 * 60 * 1000, "rate": 75},
            {"task_name": "write docs", "total_time": "30m", "total_ms": 30 * 60 * 1000, "rate": 25},
        ]
        assert [item["task_name"] for item in report["last_month"]] == ["review", "write docs"]
        assert [item["task_name"] for item in report["last_half_year"]] == ["planning", "review", "write docs"]
        assert [item["task_name"] for item in report["last_year"]] == ["planning", "review", "write docs"]
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_unknown_token_is_a_page_state_not_a_crash() -> None:
    engine, TestingSession = _setup_db()

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_report_contexts] = lambda: ReportContextStore(clock=lambda: NOW)
    client = TestClient(app)

    try:
        response = client.get("/report/not-a-token")
        assert response.status_code == 404
        body = response.json()
        assert body["error_message"].startswith("This report link has expired")
        assert body["last_week"] == []
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_health_endpoints() -> None:
    client = TestClient(app)
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/api/v1/health").json() == {"status": "ok"}
