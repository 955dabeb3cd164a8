from __future__ import annotations

import httpx
import pytest
from fastapi import FastAPI

from vip_access.api.router import router
from vip_access.models.plan import Currency


def _client(services=None) -> httpx.AsyncClient:
    app = FastAPI()
    app.include_router(router)
    if services is not None:
        app.state.services = services
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_reports_strategy_and_currencies(services):
    async with _client(services) as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert "verification:delayed_trust" in body["features"]
    assert "currency:TON" in body["features"]


@pytest.mark.asyncio
async def test_health_before_startup_is_unavailable():
    async with _client() as client:
        resp = await client.get("/health")
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_plans_listing(services):
    async with _client(services) as client:
        resp = await client.get("/plans")

    assert resp.status_code == 200
    plans = {p["id"]: p for p in resp.json()}
    assert plans["1month"]["months"] == 1
    assert plans["3months"]["prices"]["USDT"] == 55


@pytest.mark.asyncio
async def test_payment_qr_for_pending_payment(services):
    async with _client(services) as client:
        missing = await client.get("/payments/1/qr.png")
        await services.payments.open_payment(1, "1month", Currency.TON)
        resp = await client.get("/payments/1/qr.png")

    assert missing.status_code == 404
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")
