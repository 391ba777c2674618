import pytest

from gpudevices.resource import (
    FallbackToNullOnInitError,
    Manager,
    NullManager,
    ResourceError,
    total_memory,
)


class _StubManager(Manager):
    def __init__(self, init_error=None, shutdown_error=None):
        self.init_error = init_error
        self.shutdown_error = shutdown_error

    def init(self):
        if self.init_error is not None:
            raise self.init_error

    def shutdown(self):
        if self.shutdown_error is not None:
            raise self.shutdown_error

    def get_devices(self):
        return ["dev0", "dev1"]

    def get_driver_version(self):
        return "400.300"

    def get_cuda_driver_version(self):
        return (8, 0)


def test_fallback_on_init_error_shutdown_succeeds():
    m = _StubManager(init_error=ResourceError("init failed"))
    f = FallbackToNullOnInitError(m)
    assert f.init() is None
    assert f.shutdown() is None
    assert f.get_devices() == []


def test_fallback_without_init_error_delegates_shutdown():
    m = _StubManager(shutdown_error=ResourceError("should not be called"))
    f = FallbackToNullOnInitError(m)
    assert f.init() is None
    with pytest.raises(ResourceError, match="^should not be called$"):
        f.shutdown()


def test_fallback_delegates_queries():
    f = FallbackToNullOnInitError(_StubManager())
    f.init()
    assert f.get_devices() == ["dev0", "dev1"]
    assert f.get_driver_version() == "400.300"
    assert f.get_cuda_driver_version() == (8, 0)


def test_fallback_after_error_reports_unsupported():
    f = FallbackToNullOnInitError(_StubManager(init_error=RuntimeError("boom")))
    f.init()
    with pytest.raises(ResourceError, match="GetDriverVersion is unsupported"):
        f.get_driver_version()
    with pytest.raises(ResourceError, match="GetCudaDriverVersion is unsupported"):
        f.get_cuda_driver_version()


def test_null_manager():
    m = NullManager()
    assert m.init() is None
    assert m.shutdown() is None
    assert m.get_devices() == []
    with pytest.raises(ResourceError):
        m.get_driver_version()


def test_total_memory_int():
    assert total_memory({"memory": 4864, "slices.gi": 1}) == 4864


def test_total_memory_missing():
    with pytest.raises(ResourceError, match="no 'memory' attribute available"):
        total_memory({"slices.gi": 1})


@pytest.mark.parametrize("value", ["4864", 1.5, True, None])
def test_total_memory_unsupported_type(value):
    with pytest.raises(ResourceError, match="unsupported attribute type"):
        total_memory({"memory": value})