from __future__ import annotations

import os

# Must be set before app.db.session is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")
for _var in ("SMTP_HOST", "REPORT_EMAIL_TO", "WHATSAPP_GATEWAY_URL"):
    os.environ.pop(_var, None)

import asyncio
from datetime import datetime
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app.core.errors import ChannelDeliveryError
from app.db import models  # noqa: F401
from app.db.base import Base
from app.db.session import SessionLocal, engine
from services.notifications.channels import DeliveryInfo


class FakeChannel:
    def __init__(self, name: str = "fake", fail: bool = False):
        self.name = name
        self.fail = fail
        self.sent: list[tuple[str, Optional[str]]] = []

    def send(self, text: str, subject: Optional[str] = None) -> DeliveryInfo:
        if self.fail:
            raise ChannelDeliveryError(self.name, "channel not ready")
        self.sent.append((text, subject))
        return DeliveryInfo(channel=self.name, recipients=["test"])


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def loop():
    lp = asyncio.new_event_loop()
    yield lp
    lp.close()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def client(channel):
    from main import app

    app.state.channels = [channel]
    with TestClient(app) as c:
        yield c
    for attr in ("channels", "notifier", "scheduler"):
        if hasattr(app.state, attr):
            delattr(app.state, attr)


def _login(client: TestClient, username: str, password: str) -> dict:
    resp = client.post("/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return _login(client, "admin", "Admin@123")


@pytest.fixture
def site_headers(client, admin_headers):
    resp = client.post(
        "/auth/users",
        json={"username": "site.engineer", "password": "Construct@123", "role": "construction"},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    return _login(client, "site.engineer", "Construct@123")
