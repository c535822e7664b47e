"""
test_rate_limit.py — Ingest routes are limited per client address.

The limiter runs after authentication and body validation, so every
authenticated request counts even when the handler then answers 404.
"""

from unittest.mock import patch

from conftest import auth_headers

from autonomy.core.rate_limit import REPORT_RATE, limiter

BODY = {"symptoms": ["fever"], "location": {"lat": 25.03, "lng": 121.56}}


async def test_limit_is_enforced(api_client):
    allowed = int(REPORT_RATE.split("/")[0])
    for _ in range(allowed):
        response = await api_client.post("/api/symptoms/report", json=BODY, headers=auth_headers("ghost"))
        assert response.status_code == 404

    response = await api_client.post("/api/symptoms/report", json=BODY, headers=auth_headers("ghost"))
    assert response.status_code == 429
    assert "error" in response.json()


async def test_rejected_hit_returns_429(api_client):
    with patch.object(limiter._limiter, "hit", return_value=False):
        response = await api_client.post("/api/geographic", json=BODY, headers=auth_headers("a1"))
    assert response.status_code == 429


async def test_read_routes_are_not_limited(api_client, fake_db):
    with patch.object(limiter._limiter, "hit", return_value=False):
        response = await api_client.get("/api/scores/account", headers=auth_headers("ghost"))
    assert response.status_code == 404
