"""Client-side load balancer that routes orders across exchange gateways."""

from __future__ import annotations

import enum
import heapq
import itertools
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from statistics import fmean
from typing import Callable, Sequence

import grpc

from orderlb.messages import (
    ROUTE_ORDER_METHOD,
    ExecutionReport,
    Order,
    decode_report,
    encode_order,
)

logger = logging.getLogger(__name__)

ROUTE_DEADLINE = 0.010
WARMUP_DEADLINE = 0.100
WARMUP_WAIT = 1.0
HEALTH_WAIT = 0.050
INITIAL_LATENCY = 999999.0

_CHANNEL_OPTIONS = (
    ("grpc.keepalive_time_ms", 10000),
    ("grpc.keepalive_timeout_ms", 5000),
    ("grpc.keepalive_permit_without_calls", 1),
    ("grpc.http2.max_pings_without_data", 0),
)

_STATE_TEXT = {
    grpc.ChannelConnectivity.IDLE: "is IDLE",
    grpc.ChannelConnectivity.CONNECTING: "is CONNECTING",
    grpc.ChannelConnectivity.READY: "is READY",
    grpc.ChannelConnectivity.TRANSIENT_FAILURE: "is in TRANSIENT FAILURE",
    grpc.ChannelConnectivity.SHUTDOWN: "is SHUTDOWN",
}


class Policy(enum.Enum):
    """How a gateway is chosen for an order without an exchange id."""

    ROUND_ROBIN = "round_robin"
    LEAST_CONNECTIONS = "least_connections"
    LOWEST_LATENCY = "lowest_latency"


class RoutingError(Exception):
    """An order could not be routed; carries the gRPC status code."""

    def __init__(self, code: grpc.StatusCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class LatencySummary:
    p50: float
    p99: float
    total_requests: int


def latency_percentiles(latencies: Sequence[float]) -> LatencySummary:
    """Median and 99th-percentile latency of a non-empty sample."""
    if not latencies:
        raise ValueError("no latency data")
    ordered = sorted(latencies)
    count = len(ordered)
    mid = count // 2
    if count % 2 == 0:
        p50 = (ordered[mid - 1] + ordered[mid]) / 2.0
    else:
        p50 = float(ordered[mid])
    p99_index = int(count * 0.99) - 1
    if p99_index < 0:
        p99_index = count - 1
    p99 = float(ordered[min(p99_index, count - 1)])
    return LatencySummary(p50=p50, p99=p99, total_requests=count)


class _WatchedChannel:
    """A channel together with its most recently reported connectivity state."""

    def __init__(self, address: str) -> None:
        self.address = address
        self.channel = grpc.insecure_channel(address, options=_CHANNEL_OPTIONS)
        self._state: grpc.ChannelConnectivity | None = None
        self._changed = threading.Condition()
        self.channel.subscribe(self._on_change, try_to_connect=True)

    def _on_change(self, state: grpc.ChannelConnectivity) -> None:
        with self._changed:
            self._state = state
            self._changed.notify_all()

    @property
    def state(self) -> grpc.ChannelConnectivity | None:
        with self._changed:
            return self._state

    def wait_until(
        self, predicate: Callable[[grpc.ChannelConnectivity | None], bool], timeout: float
    ) -> bool:
        with self._changed:
            return self._changed.wait_for(lambda: predicate(self._state), timeout)

    def close(self) -> None:
        self.channel.unsubscribe(self._on_change)
        self.channel.close()


class LoadBalancer:
    """Routes orders to gateways by exchange id or by the current policy."""

    def __init__(
        self, gateway_addresses: Sequence[str], exchange_names: Sequence[str]
    ) -> None:
        if len(exchange_names) < len(gateway_addresses):
            raise ValueError("every gateway address needs an exchange name")
        self.policy = Policy.ROUND_ROBIN
        self._addresses = list(gateway_addresses)
        self._exchanges = {
            name: index for index, name in zip(range(len(self._addresses)), exchange_names)
        }
        self._current = 0
        self._failure_counts: dict[str, int] = defaultdict(int)
        self._channel_freq: dict[str, int] = defaultdict(int)
        self._latency_records: dict[str, list[int]] = defaultdict(list)
        self._sequence = itertools.count()
        self._connection_heap: list[list] = []
        self._latency_heap: list[list] = []
        self._watches: list[_WatchedChannel] = []
        self._stubs = []

        for index, address in enumerate(self._addresses):
            watch = _WatchedChannel(address)
            watch.wait_until(
                lambda state: state not in (None, grpc.ChannelConnectivity.IDLE),
                WARMUP_WAIT,
            )
            self._watches.append(watch)
            stub = watch.channel.unary_unary(
                ROUTE_ORDER_METHOD,
                request_serializer=encode_order,
                response_deserializer=decode_report,
            )
            self._stubs.append(stub)
            heapq.heappush(self._connection_heap, [0, next(self._sequence), index])
            heapq.heappush(
                self._latency_heap, [INITIAL_LATENCY, next(self._sequence), index]
            )
            self._warm_up(index)

    def _warm_up(self, index: int) -> None:
        address = self._addresses[index]
        dummy = Order(order_id="dummy", price=0.0, quantity=0)
        try:
            self._stubs[index](dummy, timeout=WARMUP_DEADLINE)
        except grpc.RpcError as err:
            logger.warning("Failed to send dummy order to %s: %s", address, err.details())
        else:
            logger.info("Dummy order sent successfully to %s", address)

    def route_order(self, order: Order) -> ExecutionReport:
        """Send an order to a chosen gateway; raises RoutingError on failure."""
        if order.exchange_id:
            index = self._force_gateway(order.exchange_id)
        elif self.policy is Policy.ROUND_ROBIN:
            index = self._select_round_robin()
        elif self.policy is Policy.LEAST_CONNECTIONS:
            index = self._select_from_heap(self._connection_heap)
        else:
            index = self._select_from_heap(self._latency_heap)

        if index is None:
            raise RoutingError(
                grpc.StatusCode.UNAVAILABLE, "No healthy gateways available"
            )

        address = self._addresses[index]
        self._update_connections(index, 1)
        failure: grpc.RpcError | None = None
        report: ExecutionReport | None = None
        start = time.perf_counter()
        try:
            report = self._stubs[index](order, timeout=ROUTE_DEADLINE)
        except grpc.RpcError as err:
            failure = err
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        self._update_connections(index, -1)

        records = self._latency_records[address]
        records.append(elapsed_ms)
        self._update_latency(index, fmean(records))

        if failure is not None:
            self._failure_counts[address] += 1
            logger.warning(
                "Failed to route order to %s: %s", address, failure.details()
            )
            raise RoutingError(failure.code(), failure.details() or "") from failure

        self._channel_freq[address] += 1
        return report

    def _force_gateway(self, exchange_id: str) -> int | None:
        index = self._exchanges.get(exchange_id)
        if index is None:
            logger.warning("No gateway found for exchange %s", exchange_id)
            return None
        if self._is_healthy(index):
            return index
        logger.warning("Gateway for exchange %s is unhealthy", exchange_id)
        return None

    def _select_round_robin(self) -> int | None:
        for _ in range(len(self._watches)):
            self._current = (self._current + 1) % len(self._watches)
            if self._is_healthy(self._current):
                return self._current
        return None

    def _select_from_heap(self, heap: list[list]) -> int | None:
        # Unhealthy gateways are dropped from the heap for good.
        while heap:
            index = heap[0][2]
            if self._is_healthy(index):
                return index
            heapq.heappop(heap)
        return None

    def _is_healthy(self, index: int) -> bool:
        watch = self._watches[index]
        state = watch.state
        if state is grpc.ChannelConnectivity.READY:
            return True
        if watch.wait_until(lambda current: current != state, HEALTH_WAIT):
            return watch.state is grpc.ChannelConnectivity.READY
        return False

    def _update_connections(self, index: int, delta: int) -> None:
        for entry in self._connection_heap:
            if entry[2] == index:
                entry[0] += delta
        heapq.heapify(self._connection_heap)

    def _update_latency(self, index: int, latency: float) -> None:
        for entry in self._latency_heap:
            if entry[2] == index:
                entry[0] = latency
        heapq.heapify(self._latency_heap)

    def channel_use_frequency(self) -> dict[str, int]:
        """Successful orders per gateway address."""
        return dict(self._channel_freq)

    def channel_state(self, index: int) -> str:
        """Human-readable connectivity state of the gateway at index."""
        text = _STATE_TEXT.get(self._watches[index].state)
        if text is None:
            return "Unknown channel state"
        return f"Channel {index} {text}"

    def average_latencies(self) -> dict[str, float]:
        """Mean latency in milliseconds per gateway address."""
        return {
            address: fmean(records)
            for address, records in self._latency_records.items()
            if records
        }

    def latency_summaries(self) -> dict[str, LatencySummary]:
        """P50/P99 latency per gateway address that has data."""
        return {
            address: latency_percentiles(records)
            for address, records in self._latency_records.items()
            if records
        }

    def format_latency_percentiles(self) -> str:
        lines = []
        for address, records in self._latency_records.items():
            if not records:
                lines.append(f"Gateway: {address} has no latency data.")
                continue
            summary = latency_percentiles(records)
            lines.append(
                f"Gateway: {address}, P50 Latency: {summary.p50:g} ms, "
                f"P99 Latency: {summary.p99:g} ms, "
                f"Total Requests: {summary.total_requests}"
            )
        return "\n".join(lines)

    def close(self) -> None:
        for watch in self._watches:
            watch.close()
        self._watches.clear()
        self._stubs.clear()

    def __enter__(self) -> LoadBalancer:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()