from __future__ import annotations

import importlib
import unicodedata
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..config import Settings, load_settings
from ..domain.calendar import parse_date, shift_date, today, week_range
from ..domain.models import Order, OrderItem
from ..errors import (
    AccessDeniedError,
    EmptyExportError,
    OrderNotFoundError,
    OrderParseError,
    ValidationError,
)
from ..logging import get_logger
agg = importlib.import_module("..production.aggregate", __package__)
from ..production.export import CsvExport, export_daily, export_order, export_weekly
from ..runtime import Runtime, build_runtime


LOG = get_logger("web")

ACCESS_HEADER = "x-access-code"


def _query_date(request: Request) -> str:
    raw = request.query_params.get("date")
    if not raw:
        return today()
    try:
        return parse_date(raw).isoformat()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body


def _content_disposition(filename: str) -> str:
    # Headers are latin-1; non-ASCII names travel in filename* as well.
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _csv_response(export: CsvExport) -> Response:
    return Response(
        export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": _content_disposition(export.filename)},
    )


def _order_from_body(body: Dict[str, Any], *, order_id: Optional[str] = None) -> Order:
    data = dict(body)
    if order_id is not None:
        data["id"] = order_id
    try:
        return Order.from_dict(data)
    except (TypeError, ValueError, AttributeError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid order: {exc}") from exc


def create_app(
    settings: Optional[Settings] = None,
    *,
    runtime: Optional[Runtime] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing the bakery JSON API and CSV downloads."""

    if runtime is None:
        runtime = build_runtime(settings or load_settings())
    service = runtime.service

    def require_access(request: Request) -> None:
        try:
            runtime.gate.require(request.headers.get(ACCESS_HEADER))
        except AccessDeniedError as exc:
            raise HTTPException(status_code=403, detail=str(exc)) from exc

    async def health(_: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "store": service.repository.store.db_path})

    # ---------- access ----------
    async def verify_access(request: Request) -> JSONResponse:
        body = await _json_body(request)
        return JSONResponse({"authorized": runtime.gate.check(str(body.get("code") or ""))})

    # ---------- catalog ----------
    async def list_products(_: Request) -> JSONResponse:
        return JSONResponse({"items": [p.to_dict() for p in service.products]})

    async def add_product(request: Request) -> JSONResponse:
        require_access(request)
        body = await _json_body(request)
        try:
            product = service.add_product(
                str(body.get("name") or ""),
                unit=str(body.get("unit") or "unidades"),
                category=str(body.get("category") or "General"),
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(product.to_dict(), status_code=201)

    async def remove_product(request: Request) -> Response:
        require_access(request)
        if not service.remove_product(request.path_params["product_id"]):
            raise HTTPException(status_code=404, detail="Product not found")
        return Response(status_code=204)

    async def list_clients(_: Request) -> JSONResponse:
        return JSONResponse({"items": [c.to_dict() for c in service.clients]})

    async def add_client(request: Request) -> JSONResponse:
        require_access(request)
        body = await _json_body(request)
        try:
            client = service.add_client(str(body.get("name") or ""), body.get("address"))
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(client.to_dict(), status_code=201)

    async def remove_client(request: Request) -> Response:
        require_access(request)
        if not service.remove_client(request.path_params["client_id"]):
            raise HTTPException(status_code=404, detail="Client not found")
        return Response(status_code=204)

    async def client_orders(request: Request) -> JSONResponse:
        client_id = request.path_params["client_id"]
        orders = sorted(service.orders_for_client(client_id), key=lambda o: o.date, reverse=True)
        return JSONResponse({"items": [o.to_dict() for o in orders]})

    # ---------- orders ----------
    async def list_orders(request: Request) -> JSONResponse:
        orders = service.orders
        if request.query_params.get("date"):
            matches = agg.on_date(_query_date(request))
            orders = [o for o in orders if matches(o)]
        client_id = request.query_params.get("client_id")
        if client_id:
            orders = [o for o in orders if o.client_id == client_id]
        return JSONResponse({"items": [o.to_dict() for o in orders], "sync_status": runtime.outbox.status})

    async def create_order(request: Request) -> JSONResponse:
        order = _order_from_body(await _json_body(request))
        try:
            created = service.create(order)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(created.to_dict(), status_code=201)

    async def order_detail(request: Request) -> JSONResponse:
        try:
            order = service.get_order(request.path_params["order_id"])
        except OrderNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JSONResponse(order.to_dict())

    async def update_order(request: Request) -> JSONResponse:
        order = _order_from_body(await _json_body(request), order_id=request.path_params["order_id"])
        try:
            updated = service.update(order)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except OrderNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JSONResponse(updated.to_dict())

    async def delete_order(request: Request) -> Response:
        try:
            service.delete(request.path_params["order_id"])
        except OrderNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return Response(status_code=204)

    async def order_csv(request: Request) -> Response:
        try:
            order = service.get_order(request.path_params["order_id"])
        except OrderNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _csv_response(export_order(order, service.products, service.clients))

    # ---------- production ----------
    async def daily_production(request: Request) -> JSONResponse:
        day = _query_date(request)
        orders = service.orders
        totals = agg.daily_totals(orders, day)
        return JSONResponse(
            {
                "date": day,
                "previous": shift_date(day, -1),
                "next": shift_date(day, 1),
                "order_count": sum(1 for o in orders if o.date == day),
                "items": [line.to_dict() for line in agg.summarize(totals, service.products)],
            }
        )

    async def weekly_production(request: Request) -> JSONResponse:
        week = week_range(_query_date(request))
        totals = agg.weekly_totals(service.orders, week.start)
        return JSONResponse(
            {
                "start": week.start,
                "end": week.end,
                "items": [line.to_dict() for line in agg.summarize(totals, service.products)],
            }
        )

    async def daily_csv(request: Request) -> Response:
        try:
            export = export_daily(service.orders, service.products, _query_date(request))
        except EmptyExportError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _csv_response(export)

    async def weekly_csv(request: Request) -> Response:
        try:
            export = export_weekly(service.orders, service.products, _query_date(request))
        except EmptyExportError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _csv_response(export)

    async def production_insights(request: Request) -> JSONResponse:
        body = await _json_body(request)
        try:
            day = parse_date(body.get("date") or today()).isoformat()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        totals = agg.daily_totals(service.orders, day)
        if not totals:
            raise HTTPException(status_code=404, detail="No hay pedidos para esta fecha")
        by_name = agg.by_name(agg.summarize(totals, service.products))
        insight = await run_in_threadpool(runtime.assistant.production_insights, by_name)
        return JSONResponse({"date": day, "insight": insight})

    # ---------- AI parsing ----------
    async def parse_order_text(request: Request) -> JSONResponse:
        body = await _json_body(request)
        text = str(body.get("text") or "")
        try:
            items: List[OrderItem] = await run_in_threadpool(
                runtime.assistant.parse_order_strict, text, service.products
            )
            error = None
        except OrderParseError as exc:
            LOG.warning("AI parse failed: %s", exc)
            items, error = [], str(exc)
        return JSONResponse({"items": [it.to_dict() for it in items], "error": error})

    # ---------- sync + settings ----------
    async def sync_status(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": runtime.outbox.status,
                "busy": runtime.outbox.busy,
                "configured": bool(service.webhook_url),
            }
        )

    async def trigger_sync(_: Request) -> JSONResponse:
        generation = service.resync()
        return JSONResponse({"queued": generation is not None, "status": runtime.outbox.status}, status_code=202)

    async def get_webhook(request: Request) -> JSONResponse:
        require_access(request)
        return JSONResponse({"url": service.webhook_url})

    async def set_webhook(request: Request) -> JSONResponse:
        require_access(request)
        body = await _json_body(request)
        service.set_webhook_url(str(body.get("url") or ""))
        return JSONResponse({"url": service.webhook_url})

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route("/api/access/verify", verify_access, methods=["POST"]),
        Route("/api/products", list_products, methods=["GET"]),
        Route("/api/products", add_product, methods=["POST"]),
        Route("/api/products/{product_id:str}", remove_product, methods=["DELETE"]),
        Route("/api/clients", list_clients, methods=["GET"]),
        Route("/api/clients", add_client, methods=["POST"]),
        Route("/api/clients/{client_id:str}", remove_client, methods=["DELETE"]),
        Route("/api/clients/{client_id:str}/orders", client_orders, methods=["GET"]),
        Route("/api/orders", list_orders, methods=["GET"]),
        Route("/api/orders", create_order, methods=["POST"]),
        Route("/api/orders/{order_id:str}", order_detail, methods=["GET"]),
        Route("/api/orders/{order_id:str}", update_order, methods=["PUT"]),
        Route("/api/orders/{order_id:str}", delete_order, methods=["DELETE"]),
        Route("/api/orders/{order_id:str}/export.csv", order_csv, methods=["GET"]),
        Route("/api/production/daily", daily_production, methods=["GET"]),
        Route("/api/production/weekly", weekly_production, methods=["GET"]),
        Route("/api/production/daily.csv", daily_csv, methods=["GET"]),
        Route("/api/production/weekly.csv", weekly_csv, methods=["GET"]),
        Route("/api/production/insights", production_insights, methods=["POST"]),
        Route("/api/ai/parse", parse_order_text, methods=["POST"]),
        Route("/api/sync", sync_status, methods=["GET"]),
        Route("/api/sync", trigger_sync, methods=["POST"]),
        Route("/api/settings/webhook", get_webhook, methods=["GET"]),
        Route("/api/settings/webhook", set_webhook, methods=["PUT"]),
    ]

    @asynccontextmanager
    async def lifespan(_: Starlette) -> AsyncIterator[None]:
        service.resync()
        try:
            yield
        finally:
            LOG.info("Shutting down; draining pending sync")
            runtime.close(timeout=30)

    app = Starlette(debug=False, routes=routes, lifespan=lifespan)
    app.state.runtime = runtime

    origins = allow_origins or ["http://localhost:5173", "http://127.0.0.1:5173"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if "*" in origins else origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


__all__ = ["create_app"]
