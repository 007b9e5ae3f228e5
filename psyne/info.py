"""Library version and build capability queries."""

VERSION_MAJOR = 2
VERSION_MINOR = 0
VERSION_PATCH = 1
VERSION_STRING = "2.0.1"


def version() -> str:
    """Return the library version string."""
    return VERSION_STRING


def has_gpu_support() -> bool:
    """Whether a GPU backend is available; this build has none."""
    return False


def has_cuda() -> bool:
    """Whether CUDA is available; it never is without GPU support."""
    return has_gpu_support() and False