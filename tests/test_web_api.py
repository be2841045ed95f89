from __future__ import annotations

import threading

import anyio
import httpx
import pytest
from starlette.testclient import TestClient

from bakery_orders.ai.assistant import OrderAssistant
from bakery_orders.domain.models import OrderItem
from bakery_orders.web.app import create_app

from conftest import fake_openai

PIN = {"X-Access-Code": "0300"}


def _client(runtime) -> TestClient:
    return TestClient(create_app(runtime=runtime, allow_origins=["*"]))


def _post_order(client: TestClient, date: str, items, client_id: str = "c1"):
    return client.post("/api/orders", json={"clientId": client_id, "date": date, "items": items})


def test_order_lifecycle_and_daily_production(runtime):
    client = _client(runtime)
    assert client.get("/api/health").json()["status"] == "ok"

    first = _post_order(client, "2024-06-10", [{"productId": "1", "quantity": 5}])
    assert first.status_code == 201
    created = first.json()
    assert created["day"] == "Lunes"
    _post_order(client, "2024-06-10", [{"productId": "1", "quantity": 3}, {"productId": "2", "quantity": 1}])
    _post_order(client, "2024-06-11", [{"productId": "1", "quantity": 2}])

    daily = client.get("/api/production/daily", params={"date": "2024-06-10"}).json()
    assert daily["order_count"] == 2
    assert (daily["previous"], daily["next"]) == ("2024-06-09", "2024-06-11")
    assert {line["productId"]: line["total"] for line in daily["items"]} == {"1": 8, "2": 1}

    weekly = client.get("/api/production/weekly", params={"date": "2024-06-13"}).json()
    assert (weekly["start"], weekly["end"]) == ("2024-06-10", "2024-06-16")
    assert {line["productName"]: line["total"] for line in weekly["items"]} == {"Pan Francés": 10, "Mignon": 1}

    updated = client.put(
        f"/api/orders/{created['id']}",
        json={"clientId": "c1", "date": "2024-06-12", "items": [{"productId": "1", "quantity": 1}]},
    )
    assert updated.status_code == 200
    assert updated.json()["day"] == "Miércoles"

    assert client.delete(f"/api/orders/{created['id']}").status_code == 204
    assert client.get(f"/api/orders/{created['id']}").status_code == 404
    assert len(client.get("/api/orders").json()["items"]) == 2


def test_validation_errors_are_400_and_change_nothing(runtime):
    client = _client(runtime)
    resp = _post_order(client, "2024-06-10", [{"productId": "", "quantity": 1}])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Selecciona los productos"
    assert _post_order(client, "2024-06-10", [{"productId": "1", "quantity": 1}], client_id="").status_code == 400
    assert client.post("/api/orders", content=b"not json").status_code == 400
    assert client.get("/api/orders").json()["items"] == []


def test_csv_downloads(runtime):
    client = _client(runtime)
    order = _post_order(client, "2024-06-10", [{"productId": "2", "quantity": 1.5}]).json()

    detail = client.get(f"/api/orders/{order['id']}/export.csv")
    assert detail.status_code == 200
    assert detail.headers["content-type"].startswith("text/csv")
    assert 'filename="pedido_Supermercado Central_2024-06-10.csv"' in detail.headers["content-disposition"]
    assert detail.text == "Producto,Cantidad,Unidad\nMignon,1.5,kg"

    daily = client.get("/api/production/daily.csv", params={"date": "2024-06-10"})
    assert daily.text.splitlines()[1] == "Mignon,1.5,kg,2024-06-10"

    weekly = client.get("/api/production/weekly.csv", params={"date": "2024-06-16"})
    assert "produccion_semanal_2024-06-10_2024-06-16.csv" in weekly.headers["content-disposition"]

    empty = client.get("/api/production/weekly.csv", params={"date": "2024-07-01"})
    assert empty.status_code == 404
    assert client.get("/api/production/daily", params={"date": "junio"}).status_code == 400


def test_catalog_and_settings_require_access_code(runtime):
    client = _client(runtime)
    assert client.post("/api/access/verify", json={"code": "1234"}).json() == {"authorized": False}
    assert client.post("/api/access/verify", json={"code": "0300"}).json() == {"authorized": True}

    assert client.post("/api/products", json={"name": "Chipá", "unit": "kg"}).status_code == 403
    product = client.post("/api/products", json={"name": "Chipá", "unit": "kg"}, headers=PIN)
    assert product.status_code == 201
    assert product.json()["category"] == "General"
    assert client.delete(f"/api/products/{product.json()['id']}", headers=PIN).status_code == 204
    assert client.delete("/api/products/nope", headers=PIN).status_code == 404

    new_client = client.post("/api/clients", json={"name": "Kiosco"}, headers=PIN).json()
    assert any(c["id"] == new_client["id"] for c in client.get("/api/clients").json()["items"])

    assert client.get("/api/settings/webhook").status_code == 403
    client.put("/api/settings/webhook", json={"url": "https://example.test/exec"}, headers=PIN)
    assert client.get("/api/settings/webhook", headers=PIN).json() == {"url": "https://example.test/exec"}


def test_sync_status_and_manual_resync(runtime, sheets):
    client = _client(runtime)
    assert client.get("/api/sync").json()["status"] == "pending"
    client.put("/api/settings/webhook", json={"url": "https://example.test/exec"}, headers=PIN)
    _post_order(client, "2024-06-10", [{"productId": "1", "quantity": 1}])
    assert runtime.outbox.flush(5)
    assert client.get("/api/sync").json() == {"status": "synced", "busy": False, "configured": True}

    assert client.post("/api/sync").json()["queued"] is True
    assert runtime.outbox.flush(5)
    assert len(sheets.calls) == 2


def test_ai_parse_reports_failure_but_returns_no_items(runtime):
    runtime.assistant.client = fake_openai(
        '{"items": [{"productName": "mignon", "quantity": 10}]}',
        "garbage",
    )
    client = _client(runtime)
    ok = client.post("/api/ai/parse", json={"text": "10 mignon"}).json()
    assert ok == {"items": [{"productId": "2", "quantity": 10}], "error": None}
    bad = client.post("/api/ai/parse", json={"text": "???"}).json()
    assert bad["items"] == []
    assert bad["error"]


def test_insights_for_day_without_orders_is_404(runtime):
    client = _client(runtime)
    assert client.post("/api/production/insights", json={"date": "2024-06-10"}).status_code == 404


def test_insights_send_named_totals_and_normalized_date(runtime):
    runtime.assistant.client = fake_openai("1. Amasar primero el mignon.")
    twin = runtime.service.add_product("Mignon", unit="kg")
    client = _client(runtime)
    _post_order(client, "2024-06-10", [{"productId": "2", "quantity": 4}, {"productId": twin.id, "quantity": 1}])

    resp = client.post("/api/production/insights", json={"date": " 2024-06-10 "})
    assert resp.status_code == 200
    assert resp.json() == {"date": "2024-06-10", "insight": "1. Amasar primero el mignon."}
    prompt = runtime.assistant.client.chat.completions.requests[0]["messages"][0]["content"]
    assert '"Mignon (2)": 4' in prompt
    assert f'"Mignon ({twin.id})": 1' in prompt

    assert client.post("/api/production/insights", json={"date": "10/06/2024"}).status_code == 400


@pytest.mark.parametrize(
    "body",
    [
        '{"clientId": "c1", "date": "2024-06-10", "items": [{"productId": "1", "quantity": "nan"}]}',
        '{"clientId": "c1", "date": "2024-06-10", "items": [{"productId": "1", "quantity": NaN}]}',
        '{"clientId": "c1", "date": "2024-06-10", "items": [{"productId": "1", "quantity": Infinity}]}',
    ],
)
def test_non_finite_quantities_are_400_and_keep_orders_listable(runtime, body):
    client = _client(runtime)
    resp = client.post("/api/orders", content=body, headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    listing = client.get("/api/orders")
    assert listing.status_code == 200
    assert listing.json()["items"] == []
    assert runtime.service.repository.load_orders() == []


class _BlockingAssistant(OrderAssistant):
    """Holds each model call until released, like a slow hosted model."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.finished = threading.Event()

    def _hold(self) -> None:
        self.entered.set()
        self.release.wait(5)
        self.finished.set()

    def parse_order_strict(self, text, products):
        self._hold()
        return []

    def production_insights(self, totals):
        self._hold()
        return "ok"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "path, payload",
    [("/api/ai/parse", {"text": "10 mignon"}), ("/api/production/insights", {"date": "2024-06-10"})],
)
async def test_model_calls_leave_the_server_responsive(runtime, path, payload):
    runtime.service.create(runtime.service.build_order("c1", "2024-06-10", [OrderItem("1", 2)]))
    runtime.assistant = assistant = _BlockingAssistant()
    transport = httpx.ASGITransport(app=create_app(runtime=runtime))
    responses = {}

    async with httpx.AsyncClient(transport=transport, base_url="http://bakery.test") as client:

        async def call_model() -> None:
            responses["model"] = await client.post(path, json=payload)

        async with anyio.create_task_group() as tg:
            tg.start_soon(call_model)
            assert await anyio.to_thread.run_sync(assistant.entered.wait, 5)
            health = await client.get("/api/health")
            stalled = assistant.finished.is_set()
            assistant.release.set()

    assert health.status_code == 200
    assert not stalled
    assert responses["model"].status_code == 200
