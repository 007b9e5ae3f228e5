from psyne import info


def test_version_string():
    assert info.version() == "2.0.1"


def test_version_matches_components():
    parts = [int(p) for p in info.version().split(".")]
    assert parts == [info.VERSION_MAJOR, info.VERSION_MINOR, info.VERSION_PATCH]


def test_no_gpu_support():
    assert info.has_gpu_support() is False


def test_cuda_requires_gpu_support():
    assert info.has_cuda() is False
    assert not (info.has_cuda() and not info.has_gpu_support())