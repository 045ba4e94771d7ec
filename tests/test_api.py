"""
HTTP API tests.
"""
import pytest
from httpx import AsyncClient

from order_api import main

from tests.conftest import callback_payload


class FakeAsyncResult:
    id = "export-task-1"


class FakeExportTask:
    def __init__(self):
        self.calls = []

    def delay(self, payment_data):
        self.calls.append(payment_data)
        return FakeAsyncResult()


async def create_order(client: AsyncClient, owner_slug=None) -> dict:
    response = await client.post(
        "/orders",
        json={
            "ownerSlug": owner_slug,
            "items": [
                {"name": "Iced Latte", "quantity": 2, "unitPrice": 45000},
                {"name": "Croissant", "quantity": 1, "unitPrice": 30000},
            ],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestOrdersAndUsers:

    @pytest.mark.asyncio
    async def test_create_and_get_order(self, client: AsyncClient) -> None:
        order = await create_order(client)

        assert order["subtotal"] == 120000
        assert order["status"] == "pending"
        assert order["items"][0] == {"name": "Iced Latte", "quantity": 2, "unitPrice": 45000}

        response = await client.get(f"/orders/{order['slug']}")
        assert response.status_code == 200
        assert response.json()["slug"] == order["slug"]
        assert response.json()["payment"] is None

    @pytest.mark.asyncio
    async def test_unknown_order(self, client: AsyncClient) -> None:
        response = await client.get("/orders/nope")

        assert response.status_code == 404
        assert response.json() == {"success": False, "code": 131000, "message": "Order not found", "detail": None}

    @pytest.mark.asyncio
    async def test_order_with_unknown_owner(self, client: AsyncClient) -> None:
        response = await client.post(
            "/orders",
            json={"ownerSlug": "ghost", "items": [{"name": "Tea", "quantity": 1, "unitPrice": 20000}]},
        )

        assert response.status_code == 404
        assert response.json()["code"] == 132000

    @pytest.mark.asyncio
    async def test_internal_payment_for_new_user(self, client: AsyncClient) -> None:
        response = await client.post("/users", json={"name": "Minh Le", "balance": 150000})
        assert response.status_code == 201
        user = response.json()

        order = await create_order(client, owner_slug=user["slug"])
        response = await client.post(
            "/payments", json={"orderSlug": order["slug"], "paymentMethod": "internal"}
        )

        assert response.status_code == 201
        assert response.json()["statusCode"] == "completed"

        order = (await client.get(f"/orders/{order['slug']}")).json()
        assert order["status"] == "paid"
        assert order["ownerSlug"] == user["slug"]
        assert order["payment"]["paymentMethod"] == "internal"


class TestPayments:

    @pytest.mark.asyncio
    async def test_cash_payment(self, client: AsyncClient) -> None:
        order = await create_order(client)

        response = await client.post("/payments", json={"orderSlug": order["slug"], "paymentMethod": "cash"})

        assert response.status_code == 201
        payment = response.json()
        assert payment["paymentMethod"] == "cash"
        assert payment["statusCode"] == "completed"
        assert payment["amount"] == 120000
        assert "qrCode" not in payment

    @pytest.mark.asyncio
    async def test_bank_transfer_and_callback(self, client: AsyncClient) -> None:
        order = await create_order(client)

        response = await client.post(
            "/payments", json={"orderSlug": order["slug"], "paymentMethod": "bank-transfer"}
        )
        assert response.status_code == 201
        payment = response.json()
        assert payment["statusCode"] == "pending"
        assert payment["qrCode"]

        response = await client.post("/payments/callback", json=callback_payload(payment["transactionId"]))
        assert response.status_code == 200
        ack = response.json()
        assert ack["responseStatus"] == {"responseCode": "SUCCESS", "responseMessage": "COMPLETED"}
        assert ack["responseBody"] == {"index": 1, "referenceCode": payment["slug"]}
        assert ack["requestTrace"]
        assert ack["responseDateTime"]

        # Gateway re-delivers the same notification
        response = await client.post("/payments/callback", json=callback_payload(payment["transactionId"]))
        assert response.status_code == 200
        assert response.json()["responseBody"]["referenceCode"] == payment["slug"]

        response = await client.get("/payments", params={"transaction": payment["transactionId"]})
        assert response.status_code == 200
        assert response.json()["statusCode"] == "completed"

        assert (await client.get(f"/orders/{order['slug']}")).json()["status"] == "paid"

    @pytest.mark.asyncio
    async def test_callback_for_unknown_transaction(self, client: AsyncClient) -> None:
        response = await client.post("/payments/callback", json=callback_payload("UNKNOWN"))

        assert response.status_code == 404
        assert response.json()["code"] == 130003

    @pytest.mark.asyncio
    async def test_callback_without_transaction(self, client: AsyncClient) -> None:
        response = await client.post("/payments/callback", json={"requestTrace": "abc"})

        assert response.status_code == 400
        assert response.json()["code"] == 130002

    @pytest.mark.asyncio
    async def test_get_payment_without_query(self, client: AsyncClient) -> None:
        response = await client.get("/payments")

        assert response.status_code == 400
        assert response.json()["code"] == 130001

    @pytest.mark.asyncio
    async def test_invalid_method(self, client: AsyncClient) -> None:
        order = await create_order(client)

        response = await client.post("/payments", json={"orderSlug": order["slug"], "paymentMethod": "bitcoin"})

        assert response.status_code == 400
        assert response.json()["code"] == 130000

    @pytest.mark.asyncio
    async def test_unknown_order(self, client: AsyncClient) -> None:
        response = await client.post("/payments", json={"orderSlug": "missing", "paymentMethod": "cash"})

        assert response.status_code == 404
        assert response.json()["code"] == 131000

    @pytest.mark.asyncio
    async def test_paid_order_rejected(self, client: AsyncClient) -> None:
        order = await create_order(client)
        await client.post("/payments", json={"orderSlug": order["slug"], "paymentMethod": "cash"})

        response = await client.post("/payments", json={"orderSlug": order["slug"], "paymentMethod": "cash"})

        assert response.status_code == 409
        assert response.json()["code"] == 131001

    @pytest.mark.asyncio
    async def test_export_queues_task(self, client: AsyncClient, monkeypatch) -> None:
        fake = FakeExportTask()
        monkeypatch.setattr(main, "export_payment_to_excel", fake)

        order = await create_order(client)
        payment = (await client.post(
            "/payments", json={"orderSlug": order["slug"], "paymentMethod": "cash"}
        )).json()

        response = await client.post(f"/payments/{payment['slug']}/export")

        assert response.status_code == 202
        assert response.json()["taskId"] == "export-task-1"
        assert fake.calls[0]["payment_slug"] == payment["slug"]
        assert fake.calls[0]["order_slug"] == order["slug"]
        assert fake.calls[0]["status_code"] == "completed"

    @pytest.mark.asyncio
    async def test_export_unknown_payment(self, client: AsyncClient) -> None:
        response = await client.post("/payments/nope/export")

        assert response.status_code == 404
        assert response.json()["code"] == 130003


class TestHealth:

    @pytest.mark.asyncio
    async def test_health_reports_components(self, client: AsyncClient) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "healthy"
        assert body["gateway"] == "healthy"
        assert body["status"] in ("operational", "degraded")
