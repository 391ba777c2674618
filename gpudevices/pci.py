"""Access to the PCI configuration space of NVIDIA devices."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

PCI_DEVICES_ROOT = "/sys/bus/pci/devices"
PCI_STATUS_BYTE = 0x06
PCI_STATUS_CAPABILITY_LIST = 0x10
PCI_CAPABILITY_LIST = 0x34
PCI_CAPABILITY_LIST_ID = 0
PCI_CAPABILITY_LIST_NEXT = 1
PCI_CAPABILITY_LENGTH = 2
PCI_CAPABILITY_VENDOR_SPECIFIC_ID = 0x09
PCI_NVIDIA_VENDOR_ID = "0x10de"

_CONFIG_SPACE_SIZE = 256


class PCIError(Exception):
    """Raised when PCI device information cannot be read or is incomplete."""


def get_byte(buffer: bytes, pos: int) -> int:
    """Return the byte at ``pos``."""
    return buffer[pos]


def get_word(buffer: bytes, pos: int) -> int:
    """Return the little-endian 16-bit value at ``pos``."""
    return int.from_bytes(buffer[pos:pos + 2], "little") if pos + 2 <= len(buffer) else _short(buffer, pos, 2)


def get_long(buffer: bytes, pos: int) -> int:
    """Return the little-endian 32-bit value at ``pos``."""
    return int.from_bytes(buffer[pos:pos + 4], "little") if pos + 4 <= len(buffer) else _short(buffer, pos, 4)


def _short(buffer: bytes, pos: int, size: int) -> int:
    raise IndexError(f"cannot read {size} bytes at offset {pos} from a buffer of {len(buffer)} bytes")


@dataclass
class PCIDevice:
    """A single PCI device and its configuration space."""

    path: str
    address: str
    vendor: str
    device_class: str
    config: bytes = field(repr=False)

    def get_vendor_specific_capability(self) -> bytes | None:
        """Return the vendor specific capability record, or None if there is none."""
        if len(self.config) < _CONFIG_SPACE_SIZE:
            raise PCIError(
                f"entire PCI configuration is not read for device {self.address}. "
                "Please run GFD with privileged mode to read complete PCI configuration data"
            )

        if not self.config[PCI_STATUS_BYTE] & PCI_STATUS_CAPABILITY_LIST:
            return None

        visited: set[int] = set()
        pos = get_byte(self.config, PCI_CAPABILITY_LIST)
        while pos != 0:
            cap_id = get_byte(self.config, pos + PCI_CAPABILITY_LIST_ID)
            next_pos = get_byte(self.config, pos + PCI_CAPABILITY_LIST_NEXT)
            length = get_byte(self.config, pos + PCI_CAPABILITY_LENGTH)

            if pos in visited:  # chain looped
                break
            if cap_id == 0xFF:  # chain broken
                break
            if cap_id == PCI_CAPABILITY_VENDOR_SPECIFIC_ID:
                start = pos + PCI_CAPABILITY_LIST_ID
                return bytes(self.config[start:start + length])

            visited.add(pos)
            pos = next_pos

        return None


class NvidiaPCI(Protocol):
    """Anything that can list NVIDIA PCI devices."""

    def devices(self) -> list[PCIDevice]: ...


class NvidiaPCILib:
    """Lists NVIDIA PCI devices from sysfs."""

    def __init__(self, root: str | Path = PCI_DEVICES_ROOT) -> None:
        self.root = Path(root)

    def devices(self) -> list[PCIDevice]:
        """Return all NVIDIA PCI devices below the root directory."""
        try:
            entries = sorted(self.root.iterdir(), key=lambda p: p.name)
        except OSError as err:
            raise PCIError(f"unable to read PCI bus devices: {err}") from err

        found: list[PCIDevice] = []
        for device_path in entries:
            address = device_path.name
            vendor = _read(device_path / "vendor", f"unable to read PCI device vendor id for {address}")
            vendor_id = vendor.decode("latin-1").strip()
            if vendor_id != PCI_NVIDIA_VENDOR_ID:
                continue

            device_class = _read(device_path / "class", f"unable to read PCI device class for {address}")
            config = _read(device_path / "config", f"unable to read PCI configuration space for {address}")

            found.append(
                PCIDevice(
                    path=str(device_path),
                    address=address,
                    vendor=vendor_id,
                    device_class=device_class.decode("latin-1")[:4],
                    config=config,
                )
            )
        return found


def _read(path: Path, message: str) -> bytes:
    try:
        return path.read_bytes()
    except OSError as err:
        raise PCIError(f"{message}: {err}") from err


def _layout(rows: dict[int, str]) -> bytes:
    """Build a 256-byte configuration space from hex rows placed at offsets."""
    config = bytearray(_CONFIG_SPACE_SIZE)
    for offset, hex_bytes in rows.items():
        data = bytes.fromhex(hex_bytes)
        config[offset:offset + len(data)] = data
    return bytes(config)


_GPU_PASSTHROUGH_CONFIG = _layout(
    {
        0x00: "de 10 8a 11 07 04 10 00 a1 00 00 03 00 f8 00 00",
        0x10: "00 00 00 ec 0c 00 00 e0 00 00 00 00 0c 00 00 ea",
        0x20: "00 00 00 00 01 c1 00 00 00 00 00 00 de 10 14 10",
        0x30: "00 00 00 ee 60 00 00 00 00 00 00 00 05 01 00 00",
        0x40: "de 10 14 10",
        0x50: "01 00 00 00 01 00 00 00 ce d6 23 00",
        0x60: "01 68 03 00 08 00 00 00 05 78 81 00 00 70 e6 fe",
        0x70: "00 00 00 00 00 43 00 00 10 b4 02 00 e1 8d 64 00",
        0x80: "10 29 00 00 03 3d 45 10 00 00 01 11",
        0x9C: "13",
        0xA4: "0e 00 00 00 03 00 3e",
        0xB4: "09 00 14 01",
    }
)

_VGPU_CONFIG = _layout(
    {
        0x00: "de 10 b8 1e 02 05 ff 06 a1 00 00 03",
        0x10: "00 00 00 fc 0c 00 00 d0 00 00 00 00 04 00 00 fa",
        0x20: "00 00 00 00 00 00 00 00 00 00 00 00 de 10 0f 13",
        0x30: "00 00 00 00 d0 00 00 00 00 00 00 00 0a 01",
        0x50: "01 00 00 00 01 00 00 00 ce d6 23",
        0x68: "05 00 81 00 00 00 e0 fe 00 00 00 00 4e 40",
        0xD0: "09 68 1b 56 46 00 16 34 36 30 2e 31 36 00 00 00 00 72 34 36 30 5f 30 30",
    }
)


class MockNvidiaPCI:
    """A fixed pair of NVIDIA PCI devices: a passthrough GPU and a vGPU."""

    def __init__(self) -> None:
        self._devices = [
            PCIDevice(path="", address="passthrough", vendor="0x10de", device_class="300",
                      config=_GPU_PASSTHROUGH_CONFIG),
            PCIDevice(path="", address="vgpu", vendor="0x10de", device_class="300",
                      config=_VGPU_CONFIG),
        ]

    def devices(self) -> list[PCIDevice]:
        """Return the mocked devices."""
        return list(self._devices)