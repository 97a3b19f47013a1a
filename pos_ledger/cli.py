"""
Command-line interface for the POS ledger.

Usage:
    pos-ledger init-db
    pos-ledger add-item --sku PCM-500 --name "Paracetamol 500mg" --price 4.50 \\
        --quantity 100 --actor <uuid>
    pos-ledger receive <item-id> 24 --actor <uuid>
    pos-ledger sell <item-id>:2:4.50 <item-id>:1:12.00 --payment card --actor <uuid>
    pos-ledger show-sale <sale-id>

Results are printed to stdout as JSON.  Failures print a JSON error object to
stderr and exit with status 1 (ledger error) or 2 (bad arguments).
"""

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.exc import ArgumentError

from pos_ledger.config import load_config
from pos_ledger.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    transaction_scope,
)
from pos_ledger.exceptions import PosLedgerError
from pos_ledger.logging_config import configure_logging, get_logger
from pos_ledger.selectors.sale_selector import SaleSelector
from pos_ledger.services.catalog_service import CatalogService
from pos_ledger.services.sale_engine import SaleEngine

logger = get_logger("cli")


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid UUID: {value!r}") from exc


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount: {value!r}") from exc


def parse_sale_line(value: str) -> dict:
    """Parse ITEM_ID:QTY:PRICE into a sale line mapping."""
    parts = value.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(
            f"sale line must look like ITEM_ID:QTY:PRICE, got {value!r}"
        )
    item_id, quantity, unit_price = (p.strip() for p in parts)
    try:
        quantity = int(quantity)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid quantity in {value!r}") from exc
    return {"item_id": item_id, "quantity": quantity, "unit_price": unit_price}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pos-ledger",
        description="Record sales against a point-of-sale inventory ledger.",
    )
    parser.add_argument("--config", help="YAML config file (default: $POS_LEDGER_CONFIG)")
    parser.add_argument("--db-url", help="Database URL (overrides config and $DATABASE_URL)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the ledger tables")

    add_item = sub.add_parser("add-item", help="Register a catalog item")
    add_item.add_argument("--sku", required=True)
    add_item.add_argument("--name", required=True)
    add_item.add_argument("--price", required=True, type=_decimal)
    add_item.add_argument("--quantity", type=int, default=0)
    add_item.add_argument("--category")
    add_item.add_argument("--actor", required=True, type=_uuid)

    receive = sub.add_parser("receive", help="Add delivered stock to an item")
    receive.add_argument("item_id", type=_uuid)
    receive.add_argument("quantity", type=int)
    receive.add_argument("--actor", required=True, type=_uuid)

    sell = sub.add_parser("sell", help="Submit a sale")
    sell.add_argument("lines", nargs="+", type=parse_sale_line, metavar="ITEM_ID:QTY:PRICE")
    sell.add_argument("--party", type=_uuid)
    sell.add_argument("--payment", default="cash", choices=["cash", "card", "online"])
    sell.add_argument("--idempotency-key")
    sell.add_argument("--actor", required=True, type=_uuid)

    show = sub.add_parser("show-sale", help="Print a committed sale")
    show.add_argument("sale_id", type=_uuid)

    return parser


def _emit(data: dict) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def _config_error(exc: Exception) -> int:
    print(json.dumps({"error": "CONFIG_ERROR", "message": str(exc)}), file=sys.stderr)
    return 2


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        return _config_error(exc)

    configure_logging(level=config.log_level, stream=sys.stderr)

    try:
        engine = create_engine_from_url(args.db_url or config.database_url, **config.engine_kwargs())
    except ArgumentError as exc:
        # unparseable URL or unknown dialect
        return _config_error(exc)
    session_factory = create_session_factory(engine)
    try:
        if args.command == "init-db":
            create_tables(engine)
            _emit({"status": "ok"})

        elif args.command == "add-item":
            with transaction_scope(session_factory) as session:
                item = CatalogService(session).create_item(
                    sku=args.sku,
                    name=args.name,
                    unit_price=args.price,
                    actor_id=args.actor,
                    quantity_on_hand=args.quantity,
                    category=args.category,
                )
            _emit(item.to_dict())

        elif args.command == "receive":
            with transaction_scope(session_factory) as session:
                item = CatalogService(session).receive_stock(
                    args.item_id, args.quantity, actor_id=args.actor,
                )
            _emit(item.to_dict())

        elif args.command == "sell":
            sale = SaleEngine(session_factory).submit_sale(
                args.lines,
                actor_id=args.actor,
                party_id=args.party,
                payment_method=args.payment,
                idempotency_key=args.idempotency_key,
            )
            _emit(sale.to_dict())

        elif args.command == "show-sale":
            with transaction_scope(session_factory) as session:
                sale = SaleSelector(session).get_sale(args.sale_id)
            _emit(sale.to_dict())

    except PosLedgerError as exc:
        logger.info("cli_command_failed", extra={"command": args.command, "error_code": exc.code})
        print(json.dumps({"error": exc.code, "message": str(exc)}), file=sys.stderr)
        return 1
    finally:
        engine.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
