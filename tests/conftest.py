from __future__ import annotations

import json
import os
import sys

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import importlib

fastapi_app = importlib.import_module("app.main").app
from app.core.config import settings
from app.db.base import Base
from app.db.session import get_db
from app.models.user_roles import UserRole
from app.models.users import User
from app.services import apps_script_client

# Ensure all models are registered with SQLAlchemy metadata
import app.models  # noqa: F401

SCRIPT_URL = "https://script.example.com/macros/s/deployment/exec"
SCRIPT_SECRET = "apps-script-shared-secret"


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, _connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db_session(engine):
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(engine, db_session):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    with TestClient(fastapi_app) as test_client:
        yield test_client
    fastapi_app.dependency_overrides.clear()


def make_response(status_code: int, body, url: str = SCRIPT_URL) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    text = body if isinstance(body, str) else json.dumps(body)
    response._content = text.encode("utf-8")  # noqa: SLF001
    response.encoding = "utf-8"
    response.url = url
    response.headers["Content-Type"] = "application/json"
    return response


class FakeAppsScript:
    """Stand-in for `requests.post` that records every outbound call."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.health_response: tuple[int, object] = (200, {"success": True, "status": "ok"})
        self.update_response: tuple[int, object] = (
            200,
            {"success": True, "updatedCount": 7, "message": "7 rows updated"},
        )
        self.error: Exception | None = None

    def __call__(self, url, json=None, headers=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        if (json or {}).get("action") == apps_script_client.HEALTHCHECK_ACTION:
            return make_response(*self.health_response, url=url)
        return make_response(*self.update_response, url=url)

    @property
    def mutating_calls(self) -> list[dict]:
        return [c for c in self.calls if (c["json"] or {}).get("action") != "healthcheck"]

    @property
    def healthcheck_calls(self) -> list[dict]:
        return [c for c in self.calls if (c["json"] or {}).get("action") == "healthcheck"]


@pytest.fixture(scope="function")
def apps_script(monkeypatch):
    fake = FakeAppsScript()
    monkeypatch.setattr(settings, "APPS_SCRIPT_URL", SCRIPT_URL)
    monkeypatch.setattr(settings, "APPS_SCRIPT_SECRET", SCRIPT_SECRET)
    monkeypatch.setattr(settings, "APPS_SCRIPT_PREFLIGHT_ENABLED", True)
    monkeypatch.setattr(apps_script_client.requests, "post", fake)
    return fake


@pytest.fixture(scope="function")
def unconfigured_apps_script(monkeypatch):
    fake = FakeAppsScript()
    monkeypatch.setattr(settings, "APPS_SCRIPT_URL", "")
    monkeypatch.setattr(settings, "APPS_SCRIPT_SECRET", "")
    monkeypatch.setattr(apps_script_client.requests, "post", fake)
    return fake


def seed_user(db, *, email: str, full_name: str | None = None, roles=()) -> User:
    user = User(email=email, username=email.split("@")[0], full_name=full_name)
    db.add(user)
    db.flush()
    for role, approved in roles:
        db.add(UserRole(user_id=user.id, role=role, approved=approved))
    db.commit()
    db.refresh(user)
    return user


def fleet_rows(count: int) -> list[dict]:
    return [
        {
            "Data": "2024-05-01",
            "Veiculo": "CB-012",
            "Motorista": "João Souza",
            "Quantidade": 100 + idx,
        }
        for idx in range(count)
    ]
