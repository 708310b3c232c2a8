# orderlb

`orderlb` sends trading orders to a set of gRPC order gateways and balances the
load across them from the client side. A gateway answers each order with an
execution report that carries the same order id.

## Installation

```
pip install .
```

With the test dependencies:

```
pip install .[test]
```

## Running the gateways

```
orderlb-gateway
```

This starts one gateway service listening on `0.0.0.0:50052`,
`0.0.0.0:50053` and `0.0.0.0:50054`. Each order it receives is printed
(`Order <id> received and processed`) and acknowledged. Other addresses can be
given with `--address`, which may be repeated:

```
orderlb-gateway --address 127.0.0.1:6000 --address 127.0.0.1:6001
```

## Sending orders

```
orderlb-client
```

This connects to `localhost:50052`, `localhost:50053` and `localhost:50054`
as the exchanges `Binance`, `Coinbase` and `Kraken`, routes 500 orders
(price 100.0, quantity 3, ids `1` to `500`) and then prints the P50 and P99
latency for each gateway. Options:

- `--count N` sets the number of orders (default 500).
- `--policy` is one of `round_robin`, `least_connections` or
  `lowest_latency` (the default).

Each routed order prints `Order <id> routed successfully`; a failed one is
reported on standard error.

## Using the balancer from Python

```python
from orderlb.balancer import LoadBalancer, Policy, RoutingError
from orderlb.messages import Order

addresses = ["localhost:50052", "localhost:50053", "localhost:50054"]
exchanges = ["Binance", "Coinbase", "Kraken"]

with LoadBalancer(addresses, exchanges) as lb:
    lb.policy = Policy.LEAST_CONNECTIONS
    try:
        report = lb.route_order(Order(order_id="1", price=100.0, quantity=3))
        print("routed", report.order_id)
    except RoutingError as exc:
        print("failed:", exc.code, exc.message)

    print(lb.format_latency_percentiles())
```

When a `LoadBalancer` is created it opens one channel per address, waits up
to a second for each to start connecting, and sends a `dummy` order with a
100 ms deadline to warm it up; the outcome is logged. Every routed order has
a 10 ms deadline. `close()` (or leaving the `with` block) closes the channels.

### Policies

- `Policy.ROUND_ROBIN` (the default) moves through the gateways in turn,
  starting with the second, and passes over any that are not healthy.
- `Policy.LEAST_CONNECTIONS` picks the healthy gateway with the fewest
  requests in flight.
- `Policy.LOWEST_LATENCY` picks the healthy gateway with the lowest average
  latency recorded so far.

With the last two policies, a gateway found unhealthy is dropped from
consideration for the rest of the balancer's life.

An order whose `exchange_id` is set goes straight to that exchange's gateway,
whatever the policy. `RoutingError` is raised with `UNAVAILABLE` when no
healthy gateway can be chosen (including an unknown or unhealthy exchange), and
with the call's own status code when the gateway call fails.

### Statistics

- `channel_use_frequency()` gives the number of successful orders per gateway
  address.
- `average_latencies()` gives the mean latency in milliseconds per address.
- `latency_summaries()` gives a `LatencySummary` (`p50`, `p99`,
  `total_requests`) per address.
- `format_latency_percentiles()` renders those summaries as text lines.
- `channel_state(index)` describes a gateway channel's connectivity state,
  e.g. `Channel 0 is READY`.
- `latency_percentiles(latencies)` computes a `LatencySummary` for any
  non-empty list of latencies and raises `ValueError` for an empty one.

Latencies are recorded in whole milliseconds, for failed calls as well as
successful ones.

### Messages

`orderlb.messages` holds the `Order` (`order_id`, `price`, `quantity`,
`exchange_id`) and `ExecutionReport` (`order_id`) types and their codecs
`encode_order`, `decode_order`, `encode_report` and `decode_report`.

## Limitations

- Messages travel as compact JSON over the gRPC method
  `/OrderRouter/RouteOrder`; there is no protocol-buffer schema, so only
  clients and gateways from this package understand each other.
- All channels and gateway ports are insecure; there is no TLS support.
- The gateway only acknowledges orders. It does not match, execute or forward
  them to any exchange.