"""Command that sends a batch of orders through the load balancer."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from orderlb.balancer import LoadBalancer, Policy, RoutingError
from orderlb.messages import Order

DEFAULT_GATEWAYS = ("localhost:50052", "localhost:50053", "localhost:50054")
DEFAULT_EXCHANGES = ("Binance", "Coinbase", "Kraken")


def run(balancer: LoadBalancer, count: int) -> int:
    """Route orders 1..count and return how many succeeded."""
    succeeded = 0
    for number in range(1, count + 1):
        order = Order(order_id=str(number), price=100.0, quantity=3)
        try:
            report = balancer.route_order(order)
        except RoutingError as err:
            print(f"Failed to route order: {number} {err.message}", file=sys.stderr)
            continue
        succeeded += 1
        print(f"Order {report.order_id} routed successfully")
    return succeeded


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Route test orders to gateways.")
    parser.add_argument("--count", type=int, default=500, help="number of orders")
    parser.add_argument(
        "--policy",
        choices=[policy.value for policy in Policy],
        default=Policy.LOWEST_LATENCY.value,
    )
    args = parser.parse_args(argv)

    with LoadBalancer(list(DEFAULT_GATEWAYS), list(DEFAULT_EXCHANGES)) as balancer:
        balancer.policy = Policy(args.policy)
        run(balancer, args.count)
        report = balancer.format_latency_percentiles()
        if report:
            print(report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())