from __future__ import annotations

import pytest

from staffclock.core.config import settings
from staffclock.core.rate_limit import limiter


@pytest.fixture
def rate_limited():
    limiter.reset()
    limiter.enabled = True
    yield limiter
    limiter.enabled = False
    limiter.reset()


def test_login_attempts_are_rate_limited_per_client(client, seeded, rate_limited):
    for _ in range(10):
        assert client.post("/auth/quick-login", json={"pin": "0000"}).status_code == 401

    response = client.post("/auth/quick-login", json={"pin": "1234"})

    assert response.status_code == 429
    assert response.json()["error"] == "Too many requests, please try again later"


def test_rotating_forwarded_for_does_not_reset_the_limit(client, seeded, rate_limited):
    for attempt in range(10):
        client.post("/auth/quick-login", json={"pin": "0000"}, headers={"X-Forwarded-For": f"10.0.0.{attempt}"})

    response = client.post("/auth/quick-login", json={"pin": "1234"}, headers={"X-Forwarded-For": "10.0.0.99"})

    assert response.status_code == 429


def test_forwarded_clients_are_limited_separately_behind_a_proxy(client, seeded, rate_limited, monkeypatch):
    monkeypatch.setattr(settings, "trust_proxy_headers", True)
    for _ in range(10):
        client.post("/auth/quick-login", json={"pin": "0000"}, headers={"X-Forwarded-For": "10.0.0.1"})

    response = client.post("/auth/quick-login", json={"pin": "1234"}, headers={"X-Forwarded-For": "10.0.0.2"})

    assert response.status_code == 200
