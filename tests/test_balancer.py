import socket

import grpc
import pytest

from orderlb.balancer import (
    LatencySummary,
    LoadBalancer,
    Policy,
    RoutingError,
    latency_percentiles,
)
from orderlb.gateway import GatewayService, build_server
from orderlb.messages import Order

EXCHANGES = ["Binance", "Coinbase", "Kraken"]

STATE_TEXTS = {
    f"Channel 0 {text}"
    for text in (
        "is IDLE",
        "is CONNECTING",
        "is READY",
        "is in TRANSIENT FAILURE",
        "is SHUTDOWN",
    )
} | {"Unknown channel state"}


def _free_port():
    with socket.socket() as sock:
        sock.bind(("localhost", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="module")
def gateway_addresses():
    server, ports = build_server(["localhost:0"] * 3, GatewayService())
    server.start()
    yield [f"localhost:{port}" for port in ports]
    server.stop(None)


@pytest.fixture
def balancer(gateway_addresses):
    with LoadBalancer(gateway_addresses, EXCHANGES) as lb:
        yield lb


def test_latency_percentiles_single():
    assert latency_percentiles([7]) == LatencySummary(p50=7.0, p99=7.0, total_requests=1)


def test_latency_percentiles_odd_median():
    assert latency_percentiles([5, 1, 3]).p50 == 3


def test_latency_percentiles_even_median_and_p99():
    summary = latency_percentiles([1, 2, 3, 4])
    assert summary.p50 == 2.5
    assert summary.p99 == 3


def test_latency_percentiles_hundred():
    summary = latency_percentiles(list(range(100, 0, -1)))
    assert summary.p99 == 99
    assert summary.total_requests == 100


def test_latency_percentiles_empty():
    with pytest.raises(ValueError):
        latency_percentiles([])


def test_mismatched_names_rejected():
    with pytest.raises(ValueError):
        LoadBalancer(["localhost:1", "localhost:2"], ["Binance"])


def test_forced_exchange_routes_to_its_gateway(balancer, gateway_addresses):
    report = balancer.route_order(Order(order_id="9", exchange_id="Kraken"))
    assert report.order_id == "9"
    assert balancer.channel_use_frequency() == {gateway_addresses[2]: 1}


def test_unknown_exchange(balancer):
    with pytest.raises(RoutingError) as info:
        balancer.route_order(Order(order_id="1", exchange_id="Nowhere"))
    assert info.value.code == grpc.StatusCode.UNAVAILABLE
    assert info.value.message == "No healthy gateways available"


def test_round_robin_spreads_orders(balancer, gateway_addresses):
    balancer.policy = Policy.ROUND_ROBIN
    for number in range(3):
        assert balancer.route_order(Order(order_id=str(number))).order_id == str(number)
    assert balancer.channel_use_frequency() == {address: 1 for address in gateway_addresses}


@pytest.mark.parametrize("policy", [Policy.LEAST_CONNECTIONS, Policy.LOWEST_LATENCY])
def test_heap_policies_route(balancer, gateway_addresses, policy):
    balancer.policy = policy
    for number in range(4):
        assert balancer.route_order(Order(order_id=str(number))).order_id == str(number)
    frequency = balancer.channel_use_frequency()
    assert sum(frequency.values()) == 4
    assert set(frequency) <= set(gateway_addresses)


def test_latency_reports(balancer):
    for number in range(3):
        balancer.route_order(Order(order_id=str(number), exchange_id="Binance"))
    summaries = balancer.latency_summaries()
    assert len(summaries) == 1
    summary = next(iter(summaries.values()))
    assert summary.total_requests == 3
    assert summary.p50 <= summary.p99
    averages = balancer.average_latencies()
    assert set(averages) == set(summaries)
    text = balancer.format_latency_percentiles()
    assert text.startswith("Gateway: ")
    assert "Total Requests: 3" in text


def test_channel_state_text(balancer):
    assert balancer.channel_state(0) in STATE_TEXTS


def test_dead_gateway_is_unavailable():
    with LoadBalancer([f"localhost:{_free_port()}"], ["Binance"]) as lb:
        with pytest.raises(RoutingError) as info:
            lb.route_order(Order(order_id="1"))
        assert info.value.code == grpc.StatusCode.UNAVAILABLE
        assert lb.channel_use_frequency() == {}