"""Object and buffer pools, memory slabs, channel metrics and build information."""

__version__ = "2.0.1"

__all__ = ["info", "metrics", "pool", "slab"]