"""Exchange gateway server that acknowledges every routed order."""

from __future__ import annotations

import argparse
from concurrent import futures
from typing import Any, Sequence

import grpc

from orderlb.messages import (
    ROUTE_ORDER_NAME,
    SERVICE_NAME,
    ExecutionReport,
    Order,
    decode_order,
    encode_report,
)

DEFAULT_ADDRESSES = ("0.0.0.0:50052", "0.0.0.0:50053", "0.0.0.0:50054")


class GatewayService:
    """Handles RouteOrder calls by echoing the order id back."""

    def route_order(self, order: Order, context: Any) -> ExecutionReport:
        report = ExecutionReport(order_id=order.order_id)
        print(f"Order {report.order_id} received and processed", flush=True)
        return report


def build_server(
    addresses: Sequence[str], service: GatewayService
) -> tuple[grpc.Server, list[int]]:
    """Create an unstarted server listening on every address.

    Returns the server and the port bound for each address, in order.
    """
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=8))
    handler = grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            ROUTE_ORDER_NAME: grpc.unary_unary_rpc_method_handler(
                service.route_order,
                request_deserializer=decode_order,
                response_serializer=encode_report,
            )
        },
    )
    server.add_generic_rpc_handlers((handler,))
    ports = []
    for address in addresses:
        port = server.add_insecure_port(address)
        if port == 0:
            raise OSError(f"could not bind gateway address {address}")
        ports.append(port)
    return server, ports


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the exchange gateway servers.")
    parser.add_argument(
        "--address",
        action="append",
        dest="addresses",
        help="address to listen on (repeatable)",
    )
    args = parser.parse_args(argv)
    addresses = args.addresses or list(DEFAULT_ADDRESSES)

    server, ports = build_server(addresses, GatewayService())
    server.start()
    print(
        "Gateway servers are running on ports " + ", ".join(str(p) for p in ports),
        flush=True,
    )
    try:
        server.wait_for_termination()
    except KeyboardInterrupt:
        server.stop(None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())