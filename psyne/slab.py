"""Contiguous memory regions for zero-copy message passing, and a pool of them."""

from __future__ import annotations

import mmap
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

HUGE_PAGE_SIZE = 2 * 1024 * 1024


@dataclass
class MemorySlabConfig:
    """How a memory slab is allocated."""

    size_bytes: int = 32 * 1024 * 1024
    use_huge_pages: bool = True
    gpu_accessible: bool = False
    numa_node: int = -1
    alignment: int = 64


class MemorySlab:
    """A page-aligned anonymous memory region exposed as a writable memoryview."""

    def __init__(self, config: Optional[MemorySlabConfig] = None):
        config = config if config is not None else MemorySlabConfig()
        if config.size_bytes <= 0:
            raise ValueError("slab size must be positive")
        if config.alignment <= 0 or config.alignment & (config.alignment - 1):
            raise ValueError("alignment must be a power of two")
        if config.numa_node < -1:
            raise ValueError("numa_node must be -1 or a node index")
        self._map: Optional[mmap.mmap] = mmap.mmap(-1, config.size_bytes)
        self._view = memoryview(self._map)
        self._size = config.size_bytes
        self._alignment = config.alignment
        self._numa_node = config.numa_node
        self._gpu_accessible = config.gpu_accessible
        self._gpu_pinned = False
        self._huge_pages = config.use_huge_pages and self._advise(
            "MADV_HUGEPAGE", 0, self._size, minimum=HUGE_PAGE_SIZE
        )

    def _advise(self, name: str, start: int, length: int, minimum: int = 0) -> bool:
        advice = getattr(mmap, name, None)
        madvise = getattr(self._map, "madvise", None)
        if advice is None or madvise is None or length < max(minimum, 1):
            return False
        page = mmap.PAGESIZE
        aligned = start - start % page
        try:
            madvise(advice, aligned, length + (start - aligned))
        except (OSError, ValueError):
            return False
        return True

    def _check_open(self) -> None:
        if self._map is None:
            raise ValueError("memory slab is closed")

    def _range(self, offset: int, size: int) -> Tuple[int, int]:
        if offset < 0 or offset > self._size:
            raise IndexError("offset outside the slab")
        if size < 0:
            raise ValueError("size must not be negative")
        length = self._size - offset if size == 0 else size
        if offset + length > self._size:
            raise IndexError("range extends past the end of the slab")
        return offset, length

    @property
    def data(self) -> memoryview:
        """Writable view of the whole slab."""
        self._check_open()
        return self._view

    @property
    def size(self) -> int:
        return self._size

    @property
    def uses_huge_pages(self) -> bool:
        return self._huge_pages

    @property
    def is_gpu_accessible(self) -> bool:
        return self._gpu_accessible

    @property
    def is_gpu_pinned(self) -> bool:
        return self._gpu_pinned

    @property
    def numa_node(self) -> int:
        return self._numa_node

    @property
    def alignment(self) -> int:
        return self._alignment

    @property
    def closed(self) -> bool:
        return self._map is None

    def __len__(self) -> int:
        return self._size

    def at(self, offset: int) -> memoryview:
        """View of the slab starting at ``offset``."""
        self._check_open()
        start, _ = self._range(offset, 0)
        return self._view[start:]

    def pin_for_gpu(self) -> None:
        """Mark the slab as pinned for device access."""
        self._check_open()
        if not self._gpu_accessible:
            raise RuntimeError("slab was not configured as GPU accessible")
        self._gpu_pinned = True

    def unpin_from_gpu(self) -> None:
        """Clear the pinned mark."""
        self._gpu_pinned = False

    def prefetch_to_gpu(self, device_id: int, offset: int = 0, size: int = 0) -> None:
        """Check that a range can be handed to a device; host memory needs no copy."""
        self._check_open()
        if not self._gpu_accessible:
            raise RuntimeError("slab was not configured as GPU accessible")
        if device_id < 0:
            raise ValueError("device_id must not be negative")
        self._range(offset, size)

    def prefetch_to_cpu(self, offset: int = 0, size: int = 0) -> None:
        """Hint that a range of the slab will soon be read (size 0 means to the end)."""
        self._check_open()
        start, length = self._range(offset, size)
        self._advise("MADV_WILLNEED", start, length)

    def close(self) -> None:
        """Unmap the slab; raises BufferError while views of it are still held."""
        if self._map is None:
            return
        self._view.release()
        try:
            self._map.close()
        except BufferError:
            self._view = memoryview(self._map)
            raise
        self._map = None
        self._gpu_pinned = False

    def __enter__(self) -> "MemorySlab":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class MemorySlabPool:
    """Thread-safe pool of pre-allocated slabs sharing one configuration."""

    def __init__(self, config: Optional[MemorySlabConfig] = None, initial_slabs: int = 4):
        if initial_slabs < 0:
            raise ValueError("initial_slabs must not be negative")
        self._config = config if config is not None else MemorySlabConfig()
        self._lock = threading.Lock()
        self._free: List[MemorySlab] = []
        self._total = 0
        self.reserve(initial_slabs)

    @property
    def config(self) -> MemorySlabConfig:
        return self._config

    @property
    def total_allocated(self) -> int:
        """Number of slabs this pool has created."""
        with self._lock:
            return self._total

    def acquire(self) -> MemorySlab:
        """Take a slab, allocating a new one if none is waiting."""
        with self._lock:
            if self._free:
                return self._free.pop()
            slab = MemorySlab(self._config)
            self._total += 1
            return slab

    def release(self, slab: Optional[MemorySlab]) -> None:
        """Return a slab to the pool."""
        if slab is None:
            return
        if slab.closed:
            raise ValueError("cannot return a closed slab to the pool")
        with self._lock:
            self._free.append(slab)

    def available(self) -> int:
        with self._lock:
            return len(self._free)

    def reserve(self, count: int) -> None:
        """Allocate ``count`` more slabs ahead of time."""
        for _ in range(count):
            slab = MemorySlab(self._config)
            with self._lock:
                self._free.append(slab)
                self._total += 1