import threading

import pytest

from psyne.pool import Buffer, BufferPool, MessagePool, ObjectPool, PooledObject


class Item:
    def __init__(self, value=0, tag=""):
        self.value = value
        self.tag = tag


def test_initial_objects_are_preallocated():
    pool = ObjectPool(Item, initial_size=5)
    assert pool.available() == 5
    assert pool.total_objects() == 5


def test_acquire_and_close_round_trip():
    pool = ObjectPool(Item, initial_size=3)
    handle = pool.acquire()
    assert handle
    assert isinstance(handle.get(), Item)
    assert pool.available() == 2
    handle.close()
    assert pool.available() == 3
    assert not handle
    assert handle.get() is None


def test_released_object_is_reused():
    pool = ObjectPool(Item, initial_size=1)
    first = pool.acquire()
    obj = first.get()
    first.close()
    second = pool.acquire()
    assert second.get() is obj
    second.close()


def test_context_manager_returns_object():
    pool = ObjectPool(Item, initial_size=2)
    with pool.acquire() as obj:
        assert isinstance(obj, Item)
        assert pool.available() == 1
    assert pool.available() == 2


def test_pool_grows_when_unlimited():
    pool = ObjectPool(Item, initial_size=0)
    handles = [pool.acquire() for _ in range(4)]
    assert all(handles)
    assert pool.total_objects() == 4
    assert pool.available() == 0
    for handle in handles:
        handle.close()
    assert pool.available() == 4


def test_exhausted_pool_gives_empty_handle():
    pool = ObjectPool(Item, initial_size=1, max_size=2)
    a = pool.acquire()
    b = pool.acquire()
    c = pool.acquire()
    assert a and b
    assert not c
    assert c.get() is None
    assert pool.total_objects() == 2
    a.close()
    b.close()


def test_detach_keeps_object_out_of_pool():
    pool = ObjectPool(Item, initial_size=2)
    handle = pool.acquire()
    obj = handle.detach()
    assert isinstance(obj, Item)
    handle.close()
    assert pool.available() == 1
    assert not handle


def test_reset_returns_old_and_holds_new():
    pool = ObjectPool(Item, initial_size=1)
    handle = pool.acquire()
    old = handle.get()
    replacement = Item(7)
    handle.reset(replacement)
    assert handle.get() is replacement
    assert pool.available() == 1
    assert pool.try_pop() is old
    handle.close()
    assert pool.try_pop() is replacement


def test_empty_handle_is_falsy():
    assert not PooledObject()


def test_try_pop_does_not_create():
    pool = ObjectPool(Item, initial_size=1)
    assert isinstance(pool.try_pop(), Item)
    assert pool.try_pop() is None
    assert pool.total_objects() == 1


def test_release_none_is_ignored():
    pool = ObjectPool(Item, initial_size=1)
    pool.release(None)
    assert pool.available() == 1


def test_reserve_respects_max_size():
    pool = ObjectPool(Item, initial_size=1, max_size=3)
    pool.reserve(10)
    assert pool.total_objects() == 3
    assert pool.available() == 3


def test_reserve_unlimited():
    pool = ObjectPool(Item, initial_size=0)
    pool.reserve(6)
    assert pool.available() == 6


def test_close_runs_deleter_on_pooled_objects():
    deleted = []
    pool = ObjectPool(Item, initial_size=3, deleter=deleted.append)
    held = pool.acquire()
    pool.close()
    assert len(deleted) == 2
    assert pool.available() == 0
    assert held.get() not in deleted
    held.close()


@pytest.mark.parametrize("kwargs", [{"initial_size": -1}, {"max_size": -1}])
def test_negative_sizes_rejected(kwargs):
    with pytest.raises(ValueError):
        ObjectPool(Item, **kwargs)


def test_concurrent_use_never_exceeds_limit():
    pool = ObjectPool(Item, initial_size=0, max_size=4)
    seen_totals = []

    def worker():
        for _ in range(200):
            handle = pool.acquire()
            seen_totals.append(pool.total_objects())
            handle.close()

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert max(seen_totals) <= 4
    assert pool.available() == pool.total_objects()


def test_buffer_capacity_and_reset():
    buf = Buffer(128)
    assert buf.capacity == 128
    buf.used = 50
    buf.reset()
    assert buf.used == 0


def test_buffer_negative_size_rejected():
    with pytest.raises(ValueError):
        Buffer(-1)


def test_buffer_pool_hands_out_empty_buffers():
    pool = BufferPool(256, initial_count=2)
    assert pool.buffer_size == 256
    assert pool.available() == 2
    handle = pool.acquire()
    buf = handle.get()
    assert buf.capacity == 256
    buf.used = 100
    handle.close()
    again = pool.acquire()
    assert again.get() is buf
    assert again.get().used == 0
    again.close()
    assert pool.total_buffers() == 2


def test_message_pool_reinitialises_with_arguments():
    pool = MessagePool(Item, initial_count=2)
    handle = pool.allocate(42, tag="P1_M42")
    msg = handle.get()
    assert msg.value == 42
    assert msg.tag == "P1_M42"
    assert pool.available() == 1
    handle.close()
    assert pool.total_messages() == 2


def test_message_pool_plain_allocate_keeps_state():
    pool = MessagePool(Item, initial_count=1)
    handle = pool.allocate(5)
    handle.close()
    plain = pool.allocate()
    assert plain.get().value == 5
    plain.close()