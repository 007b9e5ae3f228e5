import pytest

from psyne.slab import HUGE_PAGE_SIZE, MemorySlab, MemorySlabConfig, MemorySlabPool


def small(size=4096, **kwargs):
    return MemorySlabConfig(size_bytes=size, **kwargs)


def test_default_config_values():
    config = MemorySlabConfig()
    assert config.size_bytes == 32 * 1024 * 1024
    assert config.use_huge_pages is True
    assert config.gpu_accessible is False
    assert config.numa_node == -1
    assert config.alignment == 64


def test_slab_reports_configuration():
    with MemorySlab(small(8192, numa_node=0, alignment=128)) as slab:
        assert slab.size == 8192
        assert len(slab) == 8192
        assert len(slab.data) == 8192
        assert slab.numa_node == 0
        assert slab.alignment == 128
        assert slab.is_gpu_accessible is False


def test_small_slab_does_not_use_huge_pages():
    with MemorySlab(small(4096, use_huge_pages=True)) as slab:
        assert slab.uses_huge_pages is False


def test_huge_pages_off_when_not_requested():
    with MemorySlab(small(HUGE_PAGE_SIZE, use_huge_pages=False)) as slab:
        assert slab.uses_huge_pages is False


def test_memory_starts_zeroed_and_is_writable():
    with MemorySlab(small()) as slab:
        assert bytes(slab.data[:16]) == bytes(16)
        slab.data[100:104] = b"abcd"
        assert bytes(slab.at(100)[:4]) == b"abcd"


def test_at_end_is_empty_and_past_end_raises():
    with MemorySlab(small(1024)) as slab:
        assert len(slab.at(1024)) == 0
        with pytest.raises(IndexError):
            slab.at(1025)
        with pytest.raises(IndexError):
            slab.at(-1)


@pytest.mark.parametrize(
    "config",
    [small(0), small(-5), small(alignment=0), small(alignment=48), small(numa_node=-2)],
)
def test_invalid_configs_rejected(config):
    with pytest.raises(ValueError):
        MemorySlab(config)


def test_pin_requires_gpu_accessible():
    with MemorySlab(small()) as slab:
        with pytest.raises(RuntimeError):
            slab.pin_for_gpu()
        with pytest.raises(RuntimeError):
            slab.prefetch_to_gpu(0)


def test_pin_and_unpin():
    with MemorySlab(small(gpu_accessible=True)) as slab:
        slab.pin_for_gpu()
        assert slab.is_gpu_pinned
        slab.unpin_from_gpu()
        assert not slab.is_gpu_pinned


def test_prefetch_range_checks():
    with MemorySlab(small(4096, gpu_accessible=True)) as slab:
        slab.prefetch_to_gpu(0, 0, 4096)
        slab.prefetch_to_cpu(1024, 1024)
        with pytest.raises(IndexError):
            slab.prefetch_to_cpu(4000, 200)
        with pytest.raises(ValueError):
            slab.prefetch_to_gpu(-1)
        with pytest.raises(ValueError):
            slab.prefetch_to_cpu(0, -1)
        assert slab.data[0] == 0


def test_close_makes_slab_unusable():
    slab = MemorySlab(small())
    slab.close()
    assert slab.closed
    slab.close()
    with pytest.raises(ValueError):
        slab.at(0)
    with pytest.raises(ValueError):
        slab.data


def test_close_with_held_view_raises_and_keeps_slab():
    slab = MemorySlab(small())
    view = slab.at(0)
    with pytest.raises(BufferError):
        slab.close()
    assert not slab.closed
    view.release()
    slab.data[0] = 9
    assert slab.data[0] == 9
    slab.close()
    assert slab.closed


def test_pool_preallocates():
    pool = MemorySlabPool(small(), initial_slabs=3)
    assert pool.available() == 3
    assert pool.total_allocated == 3


def test_pool_acquire_release_reuses():
    pool = MemorySlabPool(small(), initial_slabs=1)
    slab = pool.acquire()
    assert pool.available() == 0
    assert slab.size == 4096
    pool.release(slab)
    assert pool.available() == 1
    assert pool.acquire() is slab


def test_pool_grows_when_empty():
    pool = MemorySlabPool(small(), initial_slabs=0)
    first = pool.acquire()
    second = pool.acquire()
    assert first is not second
    assert pool.total_allocated == 2


def test_pool_reserve_and_release_none():
    pool = MemorySlabPool(small(), initial_slabs=1)
    pool.reserve(2)
    pool.release(None)
    assert pool.available() == 3
    assert pool.total_allocated == 3


def test_pool_rejects_closed_slab():
    pool = MemorySlabPool(small(), initial_slabs=1)
    slab = pool.acquire()
    slab.close()
    with pytest.raises(ValueError):
        pool.release(slab)