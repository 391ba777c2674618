"""Mapping of resource names to devices, including replicated (shared) devices."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable

from gpudevices.devices import Device, Devices, build_device, new_annotated_id

_INDEX = re.compile(r"[0-9]+(:[0-9]+)?")


class DeviceMapError(Exception):
    """Raised when a device map cannot be built or updated."""


@dataclass
class ReplicatedDevices:
    """Which devices of a resource are replicated: all, the first N, or a list of refs."""

    all: bool = False
    count: int = 0
    refs: list[str] = field(default_factory=list)


@dataclass
class ReplicatedResource:
    """A resource whose devices are advertised several times."""

    name: str
    devices: ReplicatedDevices
    replicas: int
    rename: str = ""


class DeviceMap(dict):
    """A mapping of resource name to Devices."""

    def insert(self, name: str, device: Device) -> None:
        """Add ``device`` under ``name``, replacing a device with the same ID."""
        self.setdefault(name, Devices())[device.id] = device

    def merge(self, other: DeviceMap) -> None:
        """Insert every device of ``other`` into this map."""
        for name, devices in other.items():
            for device in devices.values():
                self.insert(name, device)

    def is_empty(self) -> bool:
        """Return True if no resource holds any device."""
        return not any(self.values())

    def set_entry(self, name: str, index: str, info) -> None:
        """Build a device at ``index`` from ``info`` and insert it under ``name``."""
        try:
            device = build_device(index, info)
        except Exception as err:
            raise DeviceMapError(f"error building Device: {err}") from err
        self.insert(name, device)

    def ids_to_replicate(self, resource: ReplicatedResource) -> list[str]:
        """Return the IDs of the devices that ``resource`` asks to replicate."""
        devices = self.get(resource.name)
        if devices is None:
            return []

        wanted = resource.devices
        if wanted.all:
            return devices.get_ids()

        if wanted.count > 0:
            if wanted.count > len(devices):
                raise DeviceMapError(
                    f"requested {wanted.count} devices to be replicated, "
                    f"but only {len(devices)} devices available"
                )
            return devices.get_ids()[: wanted.count]

        if wanted.refs:
            ids: list[str] = []
            for ref in wanted.refs:
                if _INDEX.fullmatch(ref):
                    device = devices.get_by_index(ref)
                    if device is None:
                        raise DeviceMapError(f"no matching device at index: {ref}")
                else:
                    device = devices.get_by_id(ref)
                    if device is None:
                        raise DeviceMapError(f"no matching device with UUID: {ref}")
                ids.append(device.id)
            return ids

        raise DeviceMapError("unexpected error")


def update_device_map_with_replicas(
    resources: Iterable[ReplicatedResource], device_map: DeviceMap
) -> DeviceMap:
    """Return a new map in which the requested devices are replaced by their replicas."""
    resources = list(resources)
    replicated_names = {r.name for r in resources}

    updated = DeviceMap(
        (name, devices) for name, devices in device_map.items() if name not in replicated_names
    )

    for resource in resources:
        try:
            ids = device_map.ids_to_replicate(resource)
        except DeviceMapError as err:
            raise DeviceMapError(
                f"unable to get IDs of devices to replicate for '{resource.name}' resource: {err}"
            ) from err
        if not ids:
            continue

        original = device_map[resource.name]
        for device in original.difference(original.subset(ids)).values():
            updated.insert(resource.name, device)

        name = resource.rename or resource.name
        for device_id in ids:
            source = original[device_id]
            for replica in range(resource.replicas):
                updated.insert(
                    name,
                    replace(source, id=new_annotated_id(device_id, replica), paths=list(source.paths)),
                )

    return updated