"""Helpers for GPU health checking: skipped Xids and device placement."""

from __future__ import annotations

import logging
import os
import re

from gpudevices.devices import Device

logger = logging.getLogger(__name__)

ENV_DISABLE_HEALTH_CHECKS = "DP_DISABLE_HEALTHCHECKS"
ALL_HEALTH_CHECKS = "xids"
NO_INSTANCE = 0xFFFFFFFF

# Application errors: the GPU should still be healthy.
APPLICATION_ERROR_XIDS = frozenset(
    {
        13,  # Graphics Engine Exception
        31,  # GPU memory page fault
        43,  # GPU stopped processing
        45,  # Preemptive cleanup, due to previous errors
        68,  # Video processor exception
    }
)

_UINT64_MAX = 2**64 - 1
_UNSIGNED = re.compile(r"[0-9]+")
_SIGNED = re.compile(r"[+-]?[0-9]+")


class MigUUIDError(ValueError):
    """Raised when a string cannot be parsed as a MIG device UUID."""


def _setting(value: str | None) -> str:
    if value is None:
        value = os.environ.get(ENV_DISABLE_HEALTH_CHECKS, "")
    return value.lower()


def get_additional_xids(value: str) -> list[int]:
    """Return the valid unsigned Xids of a comma-separated list; others are ignored."""
    xids: list[int] = []
    for part in value.split(","):
        trimmed = part.strip()
        if not trimmed:
            continue
        if not _UNSIGNED.fullmatch(trimmed) or int(trimmed) > _UINT64_MAX:
            logger.info("Ignoring malformed Xid value %s", trimmed)
            continue
        xids.append(int(trimmed))
    return xids


def health_checks_disabled(value: str | None = None) -> bool:
    """Return True if the setting (or the environment) disables health checks."""
    setting = _setting(value)
    if setting == "all":
        setting = ALL_HEALTH_CHECKS
    return ALL_HEALTH_CHECKS in setting


def skipped_xids(value: str | None = None) -> set[int]:
    """Return the Xids that never mark a device unhealthy."""
    return set(APPLICATION_ERROR_XIDS) | set(get_additional_xids(_setting(value)))


def parse_mig_device_uuid(uuid: str) -> tuple[str, int, int]:
    """Split a MIG device UUID into (parent UUID, GPU instance, compute instance)."""
    prefix, sep, rest = uuid.partition("-")
    if not sep or prefix != "MIG":
        raise MigUUIDError("Unable to parse UUID as MIG device")

    tokens = rest.split("/", 2)
    if len(tokens) != 3 or not tokens[0].startswith("GPU-"):
        raise MigUUIDError("Unable to parse UUID as MIG device")

    parent, gi, ci = tokens
    if not _SIGNED.fullmatch(gi) or not _SIGNED.fullmatch(ci):
        raise MigUUIDError("Unable to parse UUID as MIG device")
    return parent, int(gi), int(ci)


def device_placement(device: Device) -> tuple[str, int, int]:
    """Return (parent UUID, GI, CI) of a device; full GPUs use NO_INSTANCE for GI and CI."""
    uuid = device.get_uuid() if hasattr(device, "get_uuid") else _strip(device.id)
    if not device.is_mig_device():
        return uuid, NO_INSTANCE, NO_INSTANCE
    return parse_mig_device_uuid(uuid)


def _strip(device_id: str) -> str:
    from gpudevices.devices import strip_annotation

    return strip_annotation(device_id)