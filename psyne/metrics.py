"""Run-time metrics, latency histograms and event tracing for channels."""

from __future__ import annotations

import copy
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, TextIO


class ChannelTransport(Enum):
    """Physical transport a channel runs over."""

    IN_PROCESS = 0
    IPC = 1
    TCP = 2
    UDP = 3
    RDMA = 4


_TRANSPORT_LABELS = {
    ChannelTransport.IN_PROCESS: "InProc",
    ChannelTransport.IPC: "IPC",
    ChannelTransport.TCP: "TCP",
    ChannelTransport.UDP: "UDP",
    ChannelTransport.RDMA: "RDMA",
}


def transport_label(transport: Any) -> str:
    """Short display name of a transport, or "Unknown"."""
    return _TRANSPORT_LABELS.get(transport, "Unknown")


@dataclass
class MetricsConfig:
    """What the collector samples and where it reports."""

    enabled: bool = True
    console_output: bool = True
    file_output: bool = False
    output_file: str = "psyne_metrics.log"
    sampling_interval_ms: int = 1000
    detailed_histograms: bool = True
    memory_tracking: bool = True
    event_tracing: bool = False
    event_buffer_size: int = 10000
    live_dashboard: bool = False


class EventType(Enum):
    """Kinds of traced channel events."""

    CHANNEL_CREATE = 0
    CHANNEL_DESTROY = 1
    MESSAGE_ALLOCATE = 2
    MESSAGE_COMMIT = 3
    MESSAGE_RECEIVE = 4
    MESSAGE_RELEASE = 5
    BUFFER_FULL = 6
    BUFFER_EMPTY = 7
    CONNECTION_ESTABLISHED = 8
    CONNECTION_LOST = 9
    ERROR_OCCURRED = 10


@dataclass(frozen=True)
class TracedEvent:
    """One traced event."""

    timestamp_ns: int
    type: EventType
    channel_name: str
    sequence: int
    size: int
    thread_id: int
    extra_info: str = ""


@dataclass(frozen=True)
class Percentiles:
    """Latency percentiles in nanoseconds."""

    p50: int = 0
    p90: int = 0
    p95: int = 0
    p99: int = 0
    p999: int = 0
    min: int = 0
    max: int = 0


_UINT64_MAX = 2**64 - 1


class LatencyHistogram:
    """Fixed-width latency histogram up to one second."""

    NUM_BUCKETS = 50
    MAX_LATENCY_NS = 1_000_000_000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets = [0] * self.NUM_BUCKETS
        self._total = 0
        self._min = _UINT64_MAX
        self._max = 0

    def __copy__(self) -> "LatencyHistogram":
        other = LatencyHistogram()
        with self._lock:
            other._buckets = list(self._buckets)
            other._total = self._total
            other._min = self._min
            other._max = self._max
        return other

    def __deepcopy__(self, memo: Dict[int, Any]) -> "LatencyHistogram":
        return self.__copy__()

    @property
    def total_samples(self) -> int:
        with self._lock:
            return self._total

    def _bucket(self, latency_ns: int) -> int:
        if latency_ns >= self.MAX_LATENCY_NS:
            return self.NUM_BUCKETS - 1
        return latency_ns * self.NUM_BUCKETS // self.MAX_LATENCY_NS

    def _bucket_value(self, bucket: int) -> int:
        return bucket * self.MAX_LATENCY_NS // self.NUM_BUCKETS

    def record(self, latency_ns: int) -> None:
        """Add one latency sample."""
        if latency_ns < 0:
            raise ValueError("latency must not be negative")
        with self._lock:
            self._buckets[self._bucket(latency_ns)] += 1
            self._total += 1
            self._min = min(self._min, latency_ns)
            self._max = max(self._max, latency_ns)

    def percentiles(self) -> Percentiles:
        """Bucket-resolution percentiles; all zero when nothing was recorded."""
        with self._lock:
            total = self._total
            if total == 0:
                return Percentiles()
            buckets = list(self._buckets)
            low, high = self._min, self._max
        targets = {
            "p50": total * 50 // 100,
            "p90": total * 90 // 100,
            "p95": total * 95 // 100,
            "p99": total * 99 // 100,
            "p999": total * 999 // 1000,
        }
        found: Dict[str, int] = {}
        running = 0
        for bucket, count in enumerate(buckets):
            running += count
            for key, target in targets.items():
                if key not in found and running >= target:
                    found[key] = self._bucket_value(bucket)
        return Percentiles(min=low, max=high, **found)

    def reset(self) -> None:
        """Forget every sample."""
        with self._lock:
            self._buckets = [0] * self.NUM_BUCKETS
            self._total = 0
            self._min = _UINT64_MAX
            self._max = 0


@dataclass
class ChannelMetrics:
    """Counters and state of one channel."""

    name: str
    transport: ChannelTransport
    capacity_bytes: int
    messages_sent: int = 0
    messages_received: int = 0
    bytes_sent: int = 0
    bytes_received: int = 0
    allocation_failures: int = 0
    receive_failures: int = 0
    bytes_used: int = 0
    bytes_available: int = 0
    is_connected: bool = False
    latency_histogram: LatencyHistogram = field(default_factory=LatencyHistogram)
    last_messages_sent: int = 0
    last_messages_received: int = 0
    last_bytes_sent: int = 0
    last_bytes_received: int = 0
    last_sample_time: int = 0
    current_allocations: int = 0
    peak_allocations: int = 0
    total_allocation_size: int = 0


_CSV_HEADER = (
    "timestamp_ms,channel,transport,msg_sent,msg_recv,"
    "bytes_sent,bytes_recv,msg_rate_send,msg_rate_recv,"
    "bandwidth_send_mbps,bandwidth_recv_mbps,"
    "latency_p50_us,latency_p99_us,bytes_used,bytes_available\n"
)

_MB = 1024.0 * 1024.0


class MetricsCollector:
    """Collects per-channel metrics and reports them periodically."""

    _shared: Optional["MetricsCollector"] = None
    _shared_lock = threading.Lock()

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        stream: Optional[TextIO] = None,
    ) -> None:
        self._clock = clock if clock is not None else time.monotonic_ns
        self._stream = stream
        self._config = MetricsConfig()
        self._channels: Dict[str, ChannelMetrics] = {}
        self._events: Deque[TracedEvent] = deque(maxlen=self._config.event_buffer_size)
        self._lock = threading.RLock()
        self._event_lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._running = False
        self._collector_thread: Optional[threading.Thread] = None
        self._dashboard_thread: Optional[threading.Thread] = None
        self._output_file: Optional[TextIO] = None

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """The process-wide collector."""
        with cls._shared_lock:
            if cls._shared is None:
                cls._shared = cls()
            return cls._shared

    @property
    def config(self) -> MetricsConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._running

    def _out(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def configure(self, config: MetricsConfig) -> None:
        """Apply a configuration; opens and truncates the CSV file if asked to."""
        with self._lock:
            self._config = replace(config)
            if self._output_file is not None:
                self._output_file.close()
                self._output_file = None
            if config.file_output:
                self._output_file = open(config.output_file, "w", encoding="utf-8")
                self._output_file.write(_CSV_HEADER)
                self._output_file.flush()
        with self._event_lock:
            self._events = deque(self._events, maxlen=max(config.event_buffer_size, 0))

    def start(self) -> None:
        """Start background sampling (and the dashboard if configured)."""
        if not self._config.enabled or self._running:
            return
        self._running = True
        self._collector_thread = threading.Thread(
            target=self._collection_loop, name="psyne-metrics", daemon=True
        )
        self._collector_thread.start()
        if self._config.live_dashboard:
            self._dashboard_thread = threading.Thread(
                target=self._dashboard_loop, name="psyne-dashboard", daemon=True
            )
            self._dashboard_thread.start()

    def stop(self) -> None:
        """Stop background threads and close the CSV file."""
        with self._lock:
            self._running = False
            self._wakeup.notify_all()
        for thread in (self._collector_thread, self._dashboard_thread):
            if thread is not None and thread is not threading.current_thread():
                thread.join()
        self._collector_thread = None
        self._dashboard_thread = None
        with self._lock:
            if self._output_file is not None:
                self._output_file.close()
                self._output_file = None

    def register_channel(self, name: str, transport: ChannelTransport, capacity: int) -> None:
        """Start tracking a channel, replacing its identity fields if known."""
        with self._lock:
            metrics = self._channels.get(name)
            if metrics is None:
                metrics = ChannelMetrics(name, transport, capacity)
                self._channels[name] = metrics
            metrics.name = name
            metrics.transport = transport
            metrics.capacity_bytes = capacity
            metrics.last_sample_time = self._clock()
            self._add_event(EventType.CHANNEL_CREATE, name, 0, 0, "")

    def unregister_channel(self, name: str) -> None:
        """Stop tracking a channel."""
        with self._lock:
            self._add_event(EventType.CHANNEL_DESTROY, name, 0, 0, "")
            self._channels.pop(name, None)

    def record_send(self, channel: str, size: int, sequence: int) -> None:
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is None:
                return
            metrics.messages_sent += 1
            metrics.bytes_sent += size
            self._add_event(EventType.MESSAGE_COMMIT, channel, sequence, size, "")

    def record_receive(self, channel: str, size: int, sequence: int, latency_ns: int) -> None:
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is None:
                return
            metrics.messages_received += 1
            metrics.bytes_received += size
            metrics.latency_histogram.record(latency_ns)
            self._add_event(
                EventType.MESSAGE_RECEIVE, channel, sequence, size, f"latency_ns={latency_ns}"
            )

    def record_allocation_failure(self, channel: str, requested_size: int) -> None:
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is None:
                return
            metrics.allocation_failures += 1
            self._add_event(EventType.BUFFER_FULL, channel, 0, requested_size, "")

    def update_buffer_state(self, channel: str, used: int, available: int) -> None:
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is not None:
                metrics.bytes_used = used
                metrics.bytes_available = available

    def record_connection_state(self, channel: str, connected: bool) -> None:
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is None:
                return
            metrics.is_connected = connected
            kind = EventType.CONNECTION_ESTABLISHED if connected else EventType.CONNECTION_LOST
            self._add_event(kind, channel, 0, 0, "")

    def record_allocation(self, channel: str, size: int) -> None:
        if not self._config.memory_tracking:
            return
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is None:
                return
            metrics.current_allocations += 1
            metrics.total_allocation_size += size
            metrics.peak_allocations = max(metrics.peak_allocations, metrics.current_allocations)

    def record_deallocation(self, channel: str, size: int) -> None:
        if not self._config.memory_tracking:
            return
        with self._lock:
            metrics = self._channels.get(channel)
            if metrics is None:
                return
            metrics.current_allocations -= 1
            metrics.total_allocation_size -= size

    def snapshot(self) -> Dict[str, ChannelMetrics]:
        """Independent copies of every channel's metrics."""
        with self._lock:
            return {name: copy.deepcopy(m) for name, m in self._channels.items()}

    def events(self) -> List[TracedEvent]:
        """Traced events, oldest first."""
        with self._event_lock:
            return list(self._events)

    def _add_event(
        self, kind: EventType, channel: str, sequence: int, size: int, extra: str
    ) -> None:
        if not self._config.event_tracing:
            return
        event = TracedEvent(
            timestamp_ns=self._clock(),
            type=kind,
            channel_name=channel,
            sequence=sequence,
            size=size,
            thread_id=threading.get_ident(),
            extra_info=extra,
        )
        with self._event_lock:
            self._events.append(event)

    def _collection_loop(self) -> None:
        while self._running:
            with self._wakeup:
                self._wakeup.wait_for(
                    lambda: not self._running,
                    timeout=self._config.sampling_interval_ms / 1000.0,
                )
            if not self._running:
                break
            self._collect_and_report()

    def _collect_and_report(self) -> None:
        with self._lock:
            now = self._clock()
            timestamp = now // 1_000_000
            for name, metrics in self._channels.items():
                duration_ms = (now - metrics.last_sample_time) // 1_000_000
                if duration_ms <= 0:
                    continue
                seconds = duration_ms / 1000.0
                msg_sent = metrics.messages_sent
                msg_recv = metrics.messages_received
                bytes_sent = metrics.bytes_sent
                bytes_recv = metrics.bytes_received

                rate_send = (msg_sent - metrics.last_messages_sent) / seconds
                rate_recv = (msg_recv - metrics.last_messages_received) / seconds
                bw_send = (bytes_sent - metrics.last_bytes_sent) / _MB / seconds
                bw_recv = (bytes_recv - metrics.last_bytes_received) / _MB / seconds

                metrics.last_messages_sent = msg_sent
                metrics.last_messages_received = msg_recv
                metrics.last_bytes_sent = bytes_sent
                metrics.last_bytes_received = bytes_recv
                metrics.last_sample_time = now

                pct = metrics.latency_histogram.percentiles()
                p50_us = pct.p50 / 1000.0
                p99_us = pct.p99 / 1000.0

                if self._config.file_output and self._output_file is not None:
                    self._output_file.write(
                        f"{timestamp},{name},{metrics.transport.value},"
                        f"{msg_sent},{msg_recv},{bytes_sent},{bytes_recv},"
                        f"{rate_send:.2f},{rate_recv:.2f},"
                        f"{bw_send:.2f},{bw_recv:.2f},"
                        f"{p50_us:.2f},{p99_us:.2f},"
                        f"{metrics.bytes_used},{metrics.bytes_available}\n"
                    )
                    self._output_file.flush()

                if self._config.console_output:
                    print(
                        f"[{name}] Rate: {rate_send:.0f}/{rate_recv:.0f} msg/s, "
                        f"{bw_send:.2f}/{bw_recv:.2f} MB/s, "
                        f"Lat(µs): {p50_us:.2f}/{p99_us:.2f} (p50/p99)",
                        file=self._out(),
                        flush=True,
                    )

    def _render_dashboard(self) -> str:
        lines = [
            "\033[2J\033[H=== Psyne Metrics Dashboard ===",
            f"Time: {datetime.now()}",
            "",
        ]
        with self._lock:
            lines.append(
                f"{'Channel':<20}{'Transport':<10}{'Send Rate':<15}{'Recv Rate':<15}"
                f"{'Bandwidth':<15}{'Latency (p50/p99)':<20}{'Buffer Usage':<15}"
            )
            lines.append("-" * 110)
            now = self._clock()
            for name, m in self._channels.items():
                seconds = (now - m.last_sample_time) // 1_000_000_000
                if seconds <= 0:
                    continue
                rate_send = (m.messages_sent - m.last_messages_sent) / seconds
                rate_recv = (m.messages_received - m.last_messages_received) / seconds
                bandwidth = (m.bytes_sent - m.last_bytes_sent) / _MB / seconds
                pct = m.latency_histogram.percentiles()
                capacity = m.bytes_used + m.bytes_available
                usage = 100.0 * m.bytes_used / capacity if capacity else 0.0
                latency = f"{pct.p50 // 1000}/{pct.p99 // 1000}µs"
                lines.append(
                    f"{name:<20}{transport_label(m.transport):<10}"
                    f"{rate_send:<15.0f}{rate_recv:<15.0f}{bandwidth:<15.2f}"
                    f"{latency:<20}{usage:.1f}%"
                )
            total_messages = sum(m.messages_sent + m.messages_received for m in self._channels.values())
            total_bytes = sum(m.bytes_sent + m.bytes_received for m in self._channels.values())
            lines += [
                "",
                "=== Summary ===",
                f"Total messages: {total_messages}",
                f"Total data: {total_bytes // 1024 // 1024} MB",
            ]
            if self._config.memory_tracking:
                lines += ["", "=== Memory Usage ==="]
                for name, m in self._channels.items():
                    lines.append(
                        f"{name}: {m.current_allocations} allocations, "
                        f"{m.total_allocation_size // 1024} KB "
                        f"(peak: {m.peak_allocations})"
                    )
        return "\n".join(lines)

    def _dashboard_loop(self) -> None:
        while self._running:
            print(self._render_dashboard(), file=self._out(), flush=True)
            with self._wakeup:
                self._wakeup.wait_for(
                    lambda: not self._running,
                    timeout=self._config.sampling_interval_ms / 1000.0,
                )