"""Order and execution-report messages exchanged between clients and gateways."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

SERVICE_NAME = "OrderRouter"
ROUTE_ORDER_NAME = "RouteOrder"
ROUTE_ORDER_METHOD = f"/{SERVICE_NAME}/{ROUTE_ORDER_NAME}"


@dataclass(frozen=True)
class Order:
    """An order to be routed to an exchange gateway."""

    order_id: str = ""
    price: float = 0.0
    quantity: int = 0
    exchange_id: str = ""


@dataclass(frozen=True)
class ExecutionReport:
    """A gateway's acknowledgement of a processed order."""

    order_id: str = ""


def _dump(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def _load(data: bytes) -> dict[str, Any]:
    payload = json.loads(bytes(data).decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("message must be a JSON object")
    return payload


def encode_order(order: Order) -> bytes:
    """Serialize an order to bytes."""
    return _dump(asdict(order))


def decode_order(data: bytes) -> Order:
    """Parse bytes produced by encode_order."""
    payload = _load(data)
    try:
        return Order(
            order_id=str(payload.get("order_id", "")),
            price=float(payload.get("price", 0.0)),
            quantity=int(payload.get("quantity", 0)),
            exchange_id=str(payload.get("exchange_id", "")),
        )
    except TypeError as err:
        raise ValueError(f"malformed order: {err}") from err


def encode_report(report: ExecutionReport) -> bytes:
    """Serialize an execution report to bytes."""
    return _dump(asdict(report))


def decode_report(data: bytes) -> ExecutionReport:
    """Parse bytes produced by encode_report."""
    payload = _load(data)
    return ExecutionReport(order_id=str(payload.get("order_id", "")))