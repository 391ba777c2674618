"""Resource managers that list devices and report driver versions."""

from __future__ import annotations

import abc
import logging
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class ResourceError(Exception):
    """Raised when a resource manager cannot perform an operation."""


class Manager(abc.ABC):
    """Manages the devices of one kind of platform."""

    @abc.abstractmethod
    def init(self) -> None:
        """Initialise the underlying library."""

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Shut down the underlying library."""

    @abc.abstractmethod
    def get_devices(self) -> list[Any]:
        """Return the devices available on the system."""

    @abc.abstractmethod
    def get_driver_version(self) -> str:
        """Return the driver version."""

    @abc.abstractmethod
    def get_cuda_driver_version(self) -> tuple[int, int]:
        """Return the CUDA driver version as (major, minor)."""


class NullManager(Manager):
    """A manager with no devices whose init and shutdown do nothing."""

    def init(self) -> None:
        """Do nothing."""

    def shutdown(self) -> None:
        """Do nothing."""

    def get_devices(self) -> list[Any]:
        """Return no devices."""
        return []

    def get_driver_version(self) -> str:
        """Raise: the null manager has no driver."""
        raise ResourceError("GetDriverVersion is unsupported")

    def get_cuda_driver_version(self) -> tuple[int, int]:
        """Raise: the null manager has no CUDA driver."""
        raise ResourceError("GetCudaDriverVersion is unsupported")


class FallbackToNullOnInitError(Manager):
    """Wraps a manager and becomes a null manager when its init fails."""

    def __init__(self, manager: Manager) -> None:
        self._wrapped = manager
        self._fallback = NullManager()

    def init(self) -> None:
        """Initialise the wrapped manager, falling back to a null manager on error."""
        try:
            self._wrapped.init()
        except Exception as err:  # any init failure triggers the fallback
            logger.warning("Failed to initialize resource manager: %s", err)
            self._wrapped = self._fallback

    def shutdown(self) -> None:
        """Shut down the active manager."""
        self._wrapped.shutdown()

    def get_devices(self) -> list[Any]:
        """Return the devices of the active manager."""
        return self._wrapped.get_devices()

    def get_driver_version(self) -> str:
        """Return the driver version of the active manager."""
        return self._wrapped.get_driver_version()

    def get_cuda_driver_version(self) -> tuple[int, int]:
        """Return the CUDA driver version of the active manager."""
        return self._wrapped.get_cuda_driver_version()


def total_memory(attributes: Mapping[str, Any]) -> int:
    """Return the 'memory' attribute of a MIG device, in MB."""
    if "memory" not in attributes:
        raise ResourceError("no 'memory' attribute available")
    value = attributes["memory"]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ResourceError(f"unsupported attribute type {type(value).__name__}")
    return value