# psyne

Building blocks for in-process message channels:

- **Object pools** (`psyne.pool`): `ObjectPool` recycles objects made by a
  factory. `acquire()` returns a `PooledObject` handle. The handle gives its
  object back to the pool when it is closed or when its `with` block ends.
  `BufferPool` does the same for fixed-size byte buffers (`Buffer`).
  `MessagePool` does it for message objects, and it can re-initialise a
  message with constructor arguments when the message is allocated.
- **Memory slabs** (`psyne.slab`): `MemorySlab` is a contiguous, writable
  anonymous memory region sized by a `MemorySlabConfig`. `MemorySlabPool`
  keeps slabs allocated ahead of time, so a slab is ready when one is wanted.
- **Metrics** (`psyne.metrics`): `MetricsCollector` counts sends, receives,
  allocations and failures per channel. It keeps latency histograms
  (`LatencyHistogram`) and can trace events (`TracedEvent`). While it runs it
  reports sampled rates to the console and, if configured, to a CSV file.
- **Build information** (`psyne.info`): `version()`, `has_gpu_support()` and
  `has_cuda()`.

## Installation

```
pip install .
```

## Object pools

```python
from psyne.pool import BufferPool, ObjectPool

pool = ObjectPool(list, initial_size=4, max_size=8)
with pool.acquire() as items:     # the with block yields the pooled object
    items.append(1)
# the list is back in the pool here
print(pool.available())           # 4

buffers = BufferPool(buffer_size=1024, initial_count=32)
with buffers.acquire() as buf:
    buf.data[:5] = b"hello"
    buf.used = 5
```

Outside a `with` block, use `handle.get()` to reach the object and
`handle.close()` to return it. `handle.detach()` takes the object out of the
pool's care for good. If a pool has a `max_size` and every object is in use,
`acquire()` returns an empty handle, and `bool(handle)` is `False`.
`ObjectPool.close()` passes each waiting object to the optional `deleter`.

## Memory slabs

```python
from psyne.slab import MemorySlab, MemorySlabConfig, MemorySlabPool

config = MemorySlabConfig(size_bytes=1024 * 1024)
with MemorySlab(config) as slab:
    view = slab.at(128)       # writable view starting at offset 128
    view[:4] = b"\x01\x02\x03\x04"
    view.release()            # views must be released before the slab closes

pool = MemorySlabPool(config, initial_slabs=4)
slab = pool.acquire()
pool.release(slab)
```

`MemorySlab.close()` raises `BufferError` while views taken from `at()` or
`data` are still alive. When `use_huge_pages` is set and the platform supports
it, huge pages are requested with `madvise`. `uses_huge_pages` reports whether
that request succeeded.

## Metrics

```python
from psyne.metrics import ChannelTransport, MetricsCollector, MetricsConfig

collector = MetricsCollector.instance()
collector.configure(MetricsConfig(console_output=False, event_tracing=True))
collector.register_channel("jobs", ChannelTransport.IPC, 16 * 1024 * 1024)

collector.record_send("jobs", 256, sequence=0)
collector.record_receive("jobs", 256, sequence=0, latency_ns=12_000)

metrics = collector.snapshot()["jobs"]
print(metrics.messages_sent, metrics.latency_histogram.percentiles().p50)
for event in collector.events():
    print(event.type.name, event.channel_name)
```

`start()` launches a background thread. At every `sampling_interval_ms` it
reports message rates, bandwidth and p50/p99 latency. With `file_output` set,
each sample is also appended as a CSV row to `output_file`. With
`live_dashboard` set, a second thread redraws a text dashboard. `stop()` ends
the threads and closes the output file. A `MetricsCollector` can also be
built directly with its own `clock` (returning nanoseconds) and output
`stream`.

## What this package does not do

- It has no channels or transports of its own. It sends nothing over shared
  memory, sockets or any other medium. `ChannelTransport` only labels what a
  caller reports to the metrics collector.
- It has no GPU backend. `has_gpu_support()` and `has_cuda()` return `False`.
  The slab's `pin_for_gpu()` and `prefetch_to_gpu()` only check the request
  and record its state.
- It provides no command-line program.

## Running the tests

```
pip install ".[test]"
pytest
```