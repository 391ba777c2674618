"""Devices managed by a resource manager, replica annotations and allocation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

HEALTHY = "Healthy"
UNHEALTHY = "Unhealthy"
TEGRA_DEVICE_NAME = "tegra"

_ANNOTATION_SEPARATOR = "::"
_REPLICA_NUMBER = re.compile(r"[+-]?[0-9]+")


class AllocationError(Exception):
    """Raised when a requested allocation cannot be satisfied."""


class _DeviceInfo(Protocol):
    def get_uuid(self) -> str: ...

    def get_paths(self) -> list[str]: ...

    def get_numa_node(self) -> tuple[bool, int]: ...

    def get_total_memory(self) -> int: ...


@dataclass
class Device:
    """A device advertised to the kubelet, with its extra metadata."""

    id: str
    index: str = ""
    paths: list[str] = field(default_factory=list)
    total_memory: int = 0
    health: str = HEALTHY
    numa_node: int | None = None

    def is_mig_device(self) -> bool:
        """Return True if the device is a MIG device."""
        return ":" in self.index

    def aligned_allocation_supported(self) -> bool:
        """Return True if the device can take part in an aligned allocation."""
        if self.is_mig_device():
            return False
        return "/dev/dxg" not in self.paths


class Devices(dict):
    """A mapping of device ID to Device."""

    def contains(self, *args: str) -> bool:
        """Return True if every given ID is present."""
        return all(device_id in self for device_id in args)

    def get_by_id(self, device_id: str) -> Device | None:
        """Return the device with the given ID, or None."""
        return self.get(device_id)

    def get_by_index(self, index: str) -> Device | None:
        """Return the first device with the given index, or None."""
        return next((d for d in self.values() if d.index == index), None)

    def subset(self, ids: Iterable[str]) -> Devices:
        """Return the devices whose IDs are in ``ids``; unknown IDs are ignored."""
        return Devices((i, self[i]) for i in ids if i in self)

    def difference(self, other: Devices) -> Devices:
        """Return the devices that are not in ``other``."""
        return Devices((i, d) for i, d in self.items() if i not in other)

    def get_ids(self) -> list[str]:
        """Return the IDs of all devices."""
        return [d.id for d in self.values()]

    def get_uuids(self) -> list[str]:
        """Return the distinct UUIDs behind the (possibly annotated) device IDs."""
        return list(dict.fromkeys(strip_annotation(d.id) for d in self.values()))

    def get_indices(self) -> list[str]:
        """Return the indices of all devices."""
        return [d.index for d in self.values()]

    def get_paths(self) -> list[str]:
        """Return the device paths of all devices."""
        return [p for d in self.values() for p in d.paths]

    def aligned_allocation_supported(self) -> bool:
        """Return True if every device supports an aligned allocation."""
        return all(d.aligned_allocation_supported() for d in self.values())


class TegraDevice:
    """The single integrated device of a Tegra system."""

    def get_uuid(self) -> str:
        return TEGRA_DEVICE_NAME

    def get_paths(self) -> list[str]:
        return []

    def get_numa_node(self) -> tuple[bool, int]:
        return False, -1

    def get_total_memory(self) -> int:
        return 0


def build_device(index: str, info: _DeviceInfo) -> Device:
    """Build a healthy Device at ``index`` from the information ``info`` provides."""
    uuid = info.get_uuid()
    paths = list(info.get_paths() or [])
    has_numa, numa = info.get_numa_node()
    total_memory = info.get_total_memory()
    return Device(
        id=uuid,
        index=index,
        paths=paths,
        total_memory=total_memory,
        health=HEALTHY,
        numa_node=numa if has_numa else None,
    )


def new_annotated_id(device_id: str, replica: int) -> str:
    """Return ``device_id`` annotated with a replica number."""
    return f"{device_id}{_ANNOTATION_SEPARATOR}{replica}"


def has_annotations(annotated_id: str) -> bool:
    """Return True if the ID carries a replica annotation."""
    return _ANNOTATION_SEPARATOR in annotated_id


def split_annotated_id(annotated_id: str) -> tuple[str, int]:
    """Split an annotated ID into its ID and replica number."""
    device_id, sep, replica = annotated_id.partition(_ANNOTATION_SEPARATOR)
    if not sep:
        return annotated_id, 0
    if _REPLICA_NUMBER.fullmatch(replica):
        return device_id, int(replica)
    return device_id, 0


def strip_annotation(annotated_id: str) -> str:
    """Return the ID part of an annotated ID."""
    return split_annotated_id(annotated_id)[0]


def any_has_annotations(ids: Iterable[str]) -> bool:
    """Return True if any of the IDs carries an annotation."""
    return any(has_annotations(i) for i in ids)


def strip_annotations(ids: Iterable[str]) -> list[str]:
    """Return the ID parts of all the annotated IDs."""
    return [strip_annotation(i) for i in ids]


def c_string(values: Iterable[int]) -> str:
    """Turn a NUL-terminated sequence of (signed) chars into a string."""
    raw = bytearray()
    for value in values:
        if value == 0:
            break
        raw.append(value & 0xFF)
    return raw.decode("utf-8", errors="replace")


def distributed_alloc(
    devices: Devices, available: Sequence[str], required: Sequence[str], size: int
) -> list[str]:
    """Pick devices so that replicas are spread evenly across the underlying GPUs."""
    candidates = devices.subset(available).difference(devices.subset(required)).get_ids()
    needed = size - len(required)
    if len(candidates) < needed:
        raise AllocationError("not enough available devices to satisfy allocation")

    # Per underlying device: [total replicas, replicas still available].
    replicas: dict[str, list[int]] = {}
    for candidate in candidates:
        replicas.setdefault(strip_annotation(candidate), [0, 0])[1] += 1
    for device_id in devices:
        counts = replicas.get(strip_annotation(device_id))
        if counts is not None:
            counts[0] += 1

    def in_use(candidate: str) -> int:
        total, free = replicas[strip_annotation(candidate)]
        return total - free

    chosen: list[str] = []
    for _ in range(needed):
        candidates.sort(key=in_use)
        pick = candidates.pop(0)
        replicas[strip_annotation(pick)][1] -= 1
        chosen.append(pick)

    return list(required) + chosen