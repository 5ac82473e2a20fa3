"""
HTTP surface: envelope bodies and status mapping.
"""

import httpx
import pytest

from main import app
from routers.dependencies import get_unload_service


@pytest.fixture
async def client(service):
    app.dependency_overrides[get_unload_service] = lambda: service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


class TestUnloadRoutes:
    async def test_create_returns_201_envelope(self, client, station):
        _, tank = station
        resp = await client.post("/api/unloads", json={"tank_id": tank.id, "unloader_id": 7, "liter_amount": 500})

        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "PENDING"

    async def test_capacity_exceeded_is_400(self, client, station):
        _, tank = station
        resp = await client.post("/api/unloads", json={"tank_id": tank.id, "unloader_id": 7, "liter_amount": 9000})

        assert resp.status_code == 400
        assert resp.json()["code"] == "CapacityExceeded"

    async def test_invalid_body_is_422_envelope(self, client, station):
        _, tank = station
        resp = await client.post("/api/unloads", json={"tank_id": tank.id, "unloader_id": 7, "liter_amount": -1})

        assert resp.status_code == 422
        body = resp.json()
        assert body["success"] is False
        assert body["code"] == "ValidationError"
        assert any("liter_amount" in field for field in body["errors"])

    async def test_approve_twice_is_409(self, client, station, seed):
        _, tank = station
        unload = await seed.pending_unload(tank, liter_amount=100.0, initial_order_volume=100.0)

        first = await client.post(f"/api/unloads/{unload.id}/approve", json={"approver_id": 3})
        second = await client.post(f"/api/unloads/{unload.id}/approve", json={"approver_id": 3})

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["code"] == "AlreadyProcessed"

    async def test_reject_unknown_is_404(self, client, station):
        resp = await client.post("/api/unloads/999/reject", json={"approver_id": 3})
        assert resp.status_code == 404

    async def test_pending_list(self, client, station, seed):
        _, tank = station
        await seed.pending_unload(tank, liter_amount=100.0)

        resp = await client.get("/api/unloads/pending", params={"gas_station_id": 1})

        assert resp.status_code == 200
        assert len(resp.json()["data"]) == 1


class TestTankAndLedgerRoutes:
    async def test_stock(self, client, station):
        _, tank = station
        resp = await client.get(f"/api/tanks/{tank.id}/stock")

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["current_stock"] == 3000.0
        assert data["free_space"] == 7000.0

    async def test_remaining_by_product(self, client, station, seed):
        product, _ = station
        await seed.purchase_order(product, 100.0, delivered_volume=30.0)

        resp = await client.get(f"/api/purchase-orders/remaining/{product.id}", params={"gas_station_id": 1})

        assert resp.json()["data"]["total_remaining"] == 70.0

    async def test_has_approved(self, client, station, seed):
        product, tank = station
        await seed.purchase_order(product, 100.0)

        resp = await client.post("/api/purchase-orders/has-approved", json={"gas_station_id": 1, "tank_ids": [tank.id]})

        assert resp.json()["data"] == {str(tank.id): True}
