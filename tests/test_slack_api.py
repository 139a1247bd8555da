from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import os
import pathlib
import sys
import time
from urllib.parse import urlencode

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
from timesbot.core.config import Settings, get_settings
from timesbot.db.base import Base
from timesbot.main import app
from timesbot.models import CurrentTask, DoneTask
from timesbot.services.accounting import Owner
from timesbot.services.owner_lock import OwnerLockRegistry
from timesbot.services.report_context import ReportContextStore
from timesbot.services.session_store import SessionStore

JST = dt.timezone(dt.timedelta(hours=9))
TABLES = [CurrentTask.__table__, DoneTask.__table__]


def _setup_db(create_tables: bool = True):
    engine = create_engine(
        "sqlite:///:memory:", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    if create_tables:
        Base.metadata.create_all(engine, tables=TABLES)
    TestingSession = sessionmaker(bind=engine, expire_on_commit=False)
    return engine, TestingSession


def _client(TestingSession, now: dt.datetime) -> TestClient:
    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    locks = OwnerLockRegistry(timeout=1.0)
    contexts = ReportContextStore(clock=lambda: now)
    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: (lambda: now)
    app.dependency_overrides[deps.get_owner_locks] = lambda: locks
    app.dependency_overrides[deps.get_report_contexts] = lambda: contexts
    return TestClient(app)


def _command(text: str, command: str = "/times") -> dict[str, str]:
    return {"team_id": "T1", "user_id": "U1", "command": command, "text": text, "user_name": "someone"}


def test_times_command_round_trip() -> None:
    engine, TestingSession = _setup_db()
    client = _client(TestingSession, dt.datetime(2024, 1, 10, 10, 0, tzinfo=JST))

    try:
        response = client.post("/slack/commands", data=_command("write docs"))
        assert response.status_code == 200
        assert response.json() == {"response_type": "in_channel", "text": '⏰ Starting "write docs"!'}

        status_response = client.post("/slack/commands", data=_command(""))
        assert status_response.json()["text"] == 'Now working on "write docs".'

        with TestingSession() as session:
            current = SessionStore(session).find_latest_open(Owner(team_id="T1", user_id="U1"))
        assert current is not None
        assert current.task_name == "write docs"
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_clock_out_payload_has_attachments() -> None:
    engine, TestingSession = _setup_db()
    client = _client(TestingSession, dt.datetime(2024, 1, 10, 10, 0, tzinfo=JST))

    try:
        client.post("/slack/commands", data=_command("write docs back 30"))
        response = client.post("/slack/commands", data=_command("clock out"))

        payload = response.json()
        assert payload["response_type"] == "in_channel"
        assert payload["attachments"][0] == {"text": '"write docs" 30m (100%)', "color": "#80EDBF"}
        assert "/report/" in payload["attachments"][1]["text"]
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_christmas_countdown_and_unknown_commands() -> None:
    engine, TestingSession = _setup_db()
    client = _client(TestingSession, dt.datetime(2024, 12, 20, 12, 0, tzinfo=JST))

    try:
        christmas = client.post("/slack/commands", data=_command("", command="/christmas_times"))
        assert christmas.json() == {"response_type": "in_channel", "text": "5 days left until Christmas"}

        unknown = client.post("/slack/commands", data=_command("", command="/nope"))
        assert unknown.json()["response_type"] == "ephemeral"
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_storage_failure_becomes_private_generic_reply() -> None:
    engine, TestingSession = _setup_db(create_tables=False)
    client = _client(TestingSession, dt.datetime(2024, 1, 10, 10, 0, tzinfo=JST))

    try:
        response = client.post("/slack/commands", data=_command("write docs"))
        assert response.status_code == 200
        payload = response.json()
        assert payload["response_type"] == "ephemeral"
        assert payload["text"].startswith("Something went wrong")
    finally:
        app.dependency_overrides.clear()


def test_signed_requests_are_verified() -> None:
    engine, TestingSession = _setup_db()
    client = _client(TestingSession, dt.datetime(2024, 1, 10, 10, 0, tzinfo=JST))
    secret = "8f742231b10e8888abcd99yyyzzz85a5"
    app.dependency_overrides[get_settings] = lambda: Settings(SLACK_SIGNING_SECRET=secret)

    body = urlencode(_command("write docs"))
    timestamp = str(int(time.time()))
    digest = hmac.new(secret.encode(), f"v0:{timestamp}:{body}".encode(), hashlib.sha256).hexdigest()
    headers = {"Content-Type": "application/x-www-form-urlencoded", "X-Slack-Request-Timestamp": timestamp}

    try:
        good = client.post("/slack/commands", content=body, headers={**headers, "X-Slack-Signature": f"v0={digest}"})
        assert good.status_code == 200
        assert good.json()["response_type"] == "in_channel"

        bad = client.post("/slack/commands", content=body, headers={**headers, "X-Slack-Signature": "v0=deadbeef"})
        assert bad.status_code == 401
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_missing_fields_are_rejected() -> None:
    engine, TestingSession = _setup_db()
    client = _client(TestingSession, dt.datetime(2024, 1, 10, 10, 0, tzinfo=JST))

    try:
        response = client.post("/slack/commands", data={"text": "write docs"})
        assert response.status_code == 400
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)


def test_undecodable_body_is_rejected() -> None:
    engine, TestingSession = _setup_db()
    client = _client(TestingSession, dt.datetime(2024, 1, 10, 10, 0, tzinfo=JST))

    try:
        response = client.post(
            "/slack/commands",
            content=b"team_id=T1&user_id=U1&command=/times&text=\xff\xfe",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == 400
        assert response.json() == {"detail": "Malformed slash command."}
    finally:
        app.dependency_overrides.clear()
        Base.metadata.drop_all(engine)
