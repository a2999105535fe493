"""Pytest configuration and fixtures."""

import pytest

from tablekeeper.app import create_app
from tablekeeper.config import TestConfig
from tablekeeper.extensions import db

ADMIN_TOKEN = "test-admin-token"
T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingNotifier:
    def __init__(self):
        self.sent = []
        self.result = True

    def __call__(self, title: str, content: str) -> bool:
        self.sent.append((title, content))
        return self.result


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(clock, notifier, monkeypatch):
    monkeypatch.setenv("ADMIN_TOKEN", ADMIN_TOKEN)
    app = create_app(TestConfig, notifier=notifier)
    app.config["CLOCK"] = clock
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}", "X-Operator-Id": "7"}


@pytest.fixture
def monitor(app):
    return app.extensions["table_monitor"]


@pytest.fixture
def make_table(client, auth_headers):
    def _make(number="A1", default_duration=90, buffer_duration=15, max_capacity=4):
        r = client.post(
            "/api/tables",
            json={
                "tableNumber": number,
                "maxCapacity": max_capacity,
                "defaultDuration": default_duration,
                "bufferDuration": buffer_duration,
            },
            headers=auth_headers,
        )
        assert r.status_code == 201, r.get_json()
        return r.get_json()
    return _make


@pytest.fixture
def start_dining(client):
    def _start(table_id):
        r = client.post("/api/dining/start", json={"tableId": table_id})
        assert r.status_code == 201, r.get_json()
        return r.get_json()
    return _start


@pytest.fixture
def make_reservation(client, auth_headers):
    def _make(**overrides):
        payload = {
            "reservationDate": "2024-01-01",
            "reservationTime": "18:30",
            "guestName": "Li Wei",
            "guestPhone": "13800000000",
            "partySize": 4,
            "source": "phone",
        }
        payload.update(overrides)
        return client.post("/api/reservations", json=payload, headers=auth_headers)
    return _make
