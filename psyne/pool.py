"""Recycling pools for objects, byte buffers and messages."""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")


class PooledObject(Generic[T]):
    """Handle to a pooled object; closing it hands the object back to its pool."""

    def __init__(self, obj: Optional[T] = None, pool: Optional["ObjectPool[T]"] = None):
        self._obj = obj
        self._pool = pool

    def get(self) -> Optional[T]:
        """Return the held object, or None for an empty handle."""
        return self._obj

    def detach(self) -> Optional[T]:
        """Give up ownership without returning the object to the pool."""
        obj = self._obj
        self._obj = None
        self._pool = None
        return obj

    def reset(self, obj: Optional[T] = None) -> None:
        """Return the held object to the pool and hold ``obj`` instead."""
        old = self._obj
        if old is not None and self._pool is not None:
            self._pool.release(old)
        self._obj = obj

    def close(self) -> None:
        """Return the held object to the pool."""
        self.reset(None)

    def __enter__(self) -> Optional[T]:
        return self._obj

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __bool__(self) -> bool:
        return self._obj is not None

    def __del__(self) -> None:
        try:
            self.close()
        except Exception:
            pass


class ObjectPool(Generic[T]):
    """Thread-safe stack of reusable objects that grows on demand."""

    def __init__(
        self,
        factory: Callable[[], T],
        initial_size: int = 16,
        max_size: int = 0,
        deleter: Optional[Callable[[T], None]] = None,
    ):
        if initial_size < 0:
            raise ValueError("initial_size must not be negative")
        if max_size < 0:
            raise ValueError("max_size must not be negative")
        self._factory = factory
        self._deleter = deleter if deleter is not None else (lambda obj: None)
        self._max_size = max_size
        self._lock = threading.Lock()
        self._free: List[T] = [factory() for _ in range(initial_size)]
        self._total = initial_size

    @property
    def max_size(self) -> int:
        """Upper bound on the number of objects (0 means unlimited)."""
        return self._max_size

    def acquire(self) -> PooledObject[T]:
        """Take an object, creating one if allowed; an empty handle when exhausted."""
        with self._lock:
            if self._free:
                return PooledObject(self._free.pop(), self)
            if self._max_size and self._total >= self._max_size:
                return PooledObject()
            obj = self._factory()
            self._total += 1
        return PooledObject(obj, self)

    def try_pop(self) -> Optional[T]:
        """Take a pooled object without creating one; None if the pool is empty."""
        with self._lock:
            return self._free.pop() if self._free else None

    def release(self, obj: Optional[T]) -> None:
        """Return an object previously taken from this pool."""
        if obj is None:
            return
        with self._lock:
            self._free.append(obj)

    def available(self) -> int:
        """Number of objects waiting in the pool."""
        with self._lock:
            return len(self._free)

    def total_objects(self) -> int:
        """Number of objects created by the pool, in use or waiting."""
        with self._lock:
            return self._total

    def reserve(self, count: int) -> None:
        """Create up to ``count`` more objects, stopping at the size limit."""
        for _ in range(count):
            with self._lock:
                if self._max_size and self._total >= self._max_size:
                    break
                self._free.append(self._factory())
                self._total += 1

    def close(self) -> None:
        """Destroy every object waiting in the pool."""
        with self._lock:
            free, self._free = self._free, []
            self._total -= len(free)
        for obj in free:
            self._deleter(obj)


class Buffer:
    """Fixed-capacity byte buffer with a fill mark."""

    def __init__(self, size: int):
        if size < 0:
            raise ValueError("buffer size must not be negative")
        self.data = bytearray(size)
        self.used = 0

    @property
    def capacity(self) -> int:
        return len(self.data)

    def reset(self) -> None:
        """Mark the buffer as empty."""
        self.used = 0


class BufferPool:
    """Pool of equally sized byte buffers."""

    def __init__(self, buffer_size: int, initial_count: int = 32):
        if buffer_size < 0:
            raise ValueError("buffer_size must not be negative")
        self._buffer_size = buffer_size
        self._pool: ObjectPool[Buffer] = ObjectPool(
            lambda: Buffer(buffer_size), initial_count
        )

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    def acquire(self) -> PooledObject[Buffer]:
        """Take an emptied buffer from the pool."""
        pooled = self._pool.acquire()
        buffer = pooled.get()
        if buffer is not None:
            buffer.reset()
        return pooled

    def available(self) -> int:
        return self._pool.available()

    def total_buffers(self) -> int:
        return self._pool.total_objects()


class MessagePool(Generic[T]):
    """Pool of message objects that can be re-initialised on allocation."""

    def __init__(self, factory: Callable[[], T], initial_count: int = 64):
        self._pool: ObjectPool[T] = ObjectPool(factory, initial_count)

    def allocate(self, *args: Any, **kwargs: Any) -> PooledObject[T]:
        """Take a message; given arguments, re-run its ``__init__`` with them."""
        pooled = self._pool.acquire()
        msg = pooled.get()
        if msg is not None and (args or kwargs):
            msg.__init__(*args, **kwargs)
        return pooled

    def available(self) -> int:
        return self._pool.available()

    def total_messages(self) -> int:
        return self._pool.total_objects()