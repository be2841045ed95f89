from __future__ import annotations

import importlib
import argparse
import json
import math
import os
import sys
from typing import Callable, List, Sequence

from ..config import load_settings
from ..domain.calendar import today, week_range
from ..domain.models import OrderItem
from ..errors import AccessDeniedError, BakeryError
from ..logging import get_logger
from ..paths import expand_abs
agg = importlib.import_module("..production.aggregate", __package__)
from ..production.export import CsvExport, export_daily, export_order, export_weekly, format_quantity
from ..runtime import Runtime, build_runtime

LOG = get_logger("cli-main")


def _ask(message: str) -> bool:
    try:
        answer = input(f"{message} [s/N] ").strip().lower()
    except EOFError:
        # No terminal to answer from; treat as a decline.
        return False
    return answer in {"s", "si", "sí", "y", "yes"}


def _confirm_fn(ns: argparse.Namespace) -> Callable[[str], bool]:
    return (lambda _msg: True) if ns.yes else _ask


def _parse_item(raw: str) -> OrderItem:
    if "=" not in raw:
        raise argparse.ArgumentTypeError(f"expected PRODUCT_ID=QTY, got {raw!r}")
    pid, qty = raw.split("=", 1)
    try:
        quantity = float(qty.replace(",", "."))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid quantity in {raw!r}") from exc
    if not math.isfinite(quantity):
        raise argparse.ArgumentTypeError(f"quantity must be finite in {raw!r}")
    if quantity.is_integer():
        quantity = int(quantity)
    return OrderItem(product_id=pid.strip(), quantity=quantity)


def _print_lines(rt: Runtime, totals) -> None:
    lines = agg.summarize(totals, rt.service.products)
    if not lines:
        print("(sin pedidos)")
        return
    width = max(len(line.product_name or line.product_id) for line in lines)
    for line in lines:
        print(f"{(line.product_name or line.product_id).ljust(width)}  {format_quantity(line.total):>8} {line.unit}")


def _write_export(export: CsvExport, output_dir: str) -> str:
    outdir = expand_abs(output_dir)
    os.makedirs(outdir, exist_ok=True)
    path = os.path.join(outdir, export.filename)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(export.content)
    LOG.info(f"Wrote: {path}")
    return path


# ---------- handlers ----------
def _handle_init(rt: Runtime, _: argparse.Namespace) -> int:
    svc = rt.service
    # Persist the collections so a fresh store holds the seed catalog explicitly.
    svc.repository.save_products(svc.products)
    svc.repository.save_clients(svc.clients)
    svc.repository.save_orders(svc.orders)
    print(svc.repository.store.db_path)
    return 0


def _handle_orders_list(rt: Runtime, ns: argparse.Namespace) -> int:
    orders = rt.service.orders
    if ns.date:
        matches = agg.on_date(ns.date)
        orders = [o for o in orders if matches(o)]
    if ns.client:
        orders = [o for o in orders if o.client_id == ns.client]
    for order in sorted(orders, key=lambda o: (o.date, o.id)):
        client = rt.service.find_client(order.client_id)
        print(f"{order.id}  {order.date} {order.day:<9}  {client.name if client else order.client_id}  ({len(order.items)} items)")
    return 0


def _handle_orders_add(rt: Runtime, ns: argparse.Namespace) -> int:
    order = rt.service.build_order(ns.client, ns.date or today(), ns.item or [])
    created = rt.service.create(order)
    print(json.dumps(created.to_dict(), ensure_ascii=False))
    return 0


def _handle_orders_delete(rt: Runtime, ns: argparse.Namespace) -> int:
    deleted = rt.service.delete(ns.order_id, confirm=_confirm_fn(ns))
    return 0 if deleted else 1


def _handle_production(rt: Runtime, ns: argparse.Namespace) -> int:
    day = ns.date or today()
    if ns.period == "weekly":
        week = week_range(day)
        print(f"Semana {week.start} .. {week.end}")
        _print_lines(rt, agg.weekly_totals(rt.service.orders, day))
    else:
        print(f"Producción {day}")
        _print_lines(rt, agg.daily_totals(rt.service.orders, day))
    return 0


def _handle_export(rt: Runtime, ns: argparse.Namespace) -> int:
    svc = rt.service
    if ns.kind == "order":
        if not ns.order_id:
            LOG.error("--order-id is required for order exports")
            return 2
        export = export_order(svc.get_order(ns.order_id), svc.products, svc.clients)
    elif ns.kind == "weekly":
        export = export_weekly(svc.orders, svc.products, ns.date or today())
    else:
        export = export_daily(svc.orders, svc.products, ns.date or today())
    print(_write_export(export, ns.output_dir))
    return 0


def _handle_parse(rt: Runtime, ns: argparse.Namespace) -> int:
    items = rt.assistant.parse_order(ns.text, rt.service.products)
    print(json.dumps([it.to_dict() for it in items], ensure_ascii=False))
    return 0 if items else 1


def _handle_sync(rt: Runtime, ns: argparse.Namespace) -> int:
    if rt.service.resync() is None:
        LOG.warning("Nothing to sync (no webhook URL configured or no orders)")
        print(rt.outbox.status)
        return 1
    rt.outbox.flush(ns.timeout)
    print(rt.outbox.status)
    return 0 if rt.outbox.status == "synced" else 1


def _handle_webhook(rt: Runtime, ns: argparse.Namespace) -> int:
    rt.gate.require(ns.code)
    if ns.url is not None:
        rt.service.set_webhook_url(ns.url)
    print(rt.service.webhook_url)
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..web.app import create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and len(allow_origins) == 1 and allow_origins[0] == "*":
        allow_origins = ["*"]
    app = create_app(load_settings(os.getcwd()), allow_origins=allow_origins)
    uvicorn.run(app, host=ns.host, port=ns.port, log_level=ns.log_level)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bakery",
        description="Bakery order management: orders, production plans, CSV exports and sheets sync.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init", help="Create the store and write the seed catalog")
    init.set_defaults(handler=_handle_init)

    orders = subparsers.add_parser("orders", help="List, add or delete orders")
    orders_sub = orders.add_subparsers(dest="orders_command", required=True)

    o_list = orders_sub.add_parser("list", help="List orders")
    o_list.add_argument("--date", help="Only orders for this date (YYYY-MM-DD)")
    o_list.add_argument("--client", help="Only orders for this client id")
    o_list.set_defaults(handler=_handle_orders_list)

    o_add = orders_sub.add_parser("add", help="Create an order")
    o_add.add_argument("--client", required=True, help="Client id")
    o_add.add_argument("--date", help="Delivery date (default: today)")
    o_add.add_argument("--item", action="append", type=_parse_item, help="PRODUCT_ID=QTY (repeatable)")
    o_add.set_defaults(handler=_handle_orders_add)

    o_del = orders_sub.add_parser("delete", help="Delete an order")
    o_del.add_argument("order_id")
    o_del.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    o_del.set_defaults(handler=_handle_orders_delete)

    prod = subparsers.add_parser("production", help="Show per-product totals")
    prod.add_argument("period", choices=["daily", "weekly"])
    prod.add_argument("--date", help="Reference date (default: today)")
    prod.set_defaults(handler=_handle_production)

    export = subparsers.add_parser("export", help="Write a CSV export")
    export.add_argument("kind", choices=["order", "daily", "weekly"])
    export.add_argument("--order-id")
    export.add_argument("--date", help="Reference date (default: today)")
    export.add_argument("--output-dir", default=".")
    export.set_defaults(handler=_handle_export)

    parse = subparsers.add_parser("parse", help="Parse a free-text order with the AI assistant")
    parse.add_argument("text")
    parse.set_defaults(handler=_handle_parse)

    sync = subparsers.add_parser("sync", help="Push all orders to the sheets webhook and wait")
    sync.add_argument("--timeout", type=float, default=60.0)
    sync.set_defaults(handler=_handle_sync)

    webhook = subparsers.add_parser("webhook", help="Show or change the sheets webhook URL")
    webhook.add_argument("--code", required=True, help="4-digit access code")
    webhook.add_argument("--url", help="New URL (empty string clears it)")
    webhook.set_defaults(handler=_handle_webhook)

    serve = subparsers.add_parser("serve", help="Run the JSON API server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8002)
    serve.add_argument("--log-level", default="info")
    serve.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve.set_defaults(handler=None, serve=True)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    provided: List[str] = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")
    args = _build_parser().parse_args(provided)

    if getattr(args, "serve", False):
        return _handle_serve(args)

    rt = build_runtime(load_settings(os.getcwd()))
    try:
        code = args.handler(rt, args)
    except AccessDeniedError as e:
        LOG.error(str(e))
        code = 3
    except BakeryError as e:
        LOG.error(str(e))
        code = 1
    except ValueError as e:
        LOG.error(f"Invalid input: {e}")
        code = 2
    finally:
        rt.close(timeout=30)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
