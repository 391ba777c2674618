"""Detection of vGPU devices and the host driver behind them."""

from __future__ import annotations

from dataclasses import dataclass, field

from gpudevices.pci import MockNvidiaPCI, NvidiaPCI, PCIDevice, PCIError

VGPU_CAPABILITY_RECORD_START = 5
HOST_DRIVER_VERSION_LENGTH = 10
HOST_DRIVER_BRANCH_LENGTH = 10


class VGPUError(Exception):
    """Raised when vGPU information cannot be determined."""


@dataclass(frozen=True)
class Info:
    """vGPU driver information of the hypervisor host."""

    host_driver_version: str
    host_driver_branch: str


@dataclass
class VGPUDevice:
    """A PCI device that carries a vGPU vendor capability."""

    pci: PCIDevice
    capability: bytes = field(repr=False)

    def get_info(self) -> Info:
        """Return the host driver version and branch from the capability records."""
        cap = self.capability
        if not cap:
            raise VGPUError(f"vendor capability record is not populated for device {self.pci.address}")

        pos = VGPU_CAPABILITY_RECORD_START
        record = _at(cap, pos)
        while record is not None and record != 0 and pos < len(cap):
            length = _at(cap, pos + 1)
            if not length:
                record = None
                break
            pos += length
            record = _at(cap, pos)

        version_end = pos + 2 + HOST_DRIVER_VERSION_LENGTH
        branch_end = version_end + HOST_DRIVER_BRANCH_LENGTH
        if record != 0 or branch_end > len(cap):
            raise VGPUError(
                "cannot find driver version record in vendor specific capability "
                f"for device {self.pci.address}"
            )

        version = cap[pos + 2:version_end].decode("latin-1").strip("\x00")
        branch = cap[version_end:branch_end].decode("latin-1").strip("\x00")
        return Info(host_driver_version=version, host_driver_branch=branch)


def _at(buffer: bytes, pos: int) -> int | None:
    return buffer[pos] if 0 <= pos < len(buffer) else None


def is_vgpu_device(capability: bytes) -> bool:
    """Return True if the capability carries the vGPU signature "VF"."""
    return len(capability) >= 5 and capability[3] == 0x56 and capability[4] == 0x46


class VGPULib:
    """Lists vGPU devices attached to the guest."""

    def __init__(self, pci: NvidiaPCI) -> None:
        self.pci = pci

    def devices(self) -> list[VGPUDevice]:
        """Return the PCI devices that are vGPUs."""
        try:
            pci_devices = self.pci.devices()
        except PCIError as err:
            raise VGPUError(f"error getting NVIDIA specific PCI devices: {err}") from err

        vgpus: list[VGPUDevice] = []
        for device in pci_devices:
            try:
                capability = device.get_vendor_specific_capability()
            except PCIError as err:
                raise VGPUError(
                    f"unable to read vendor specific capability for {device.address}: {err}"
                ) from err
            if capability is None:
                continue
            if is_vgpu_device(capability):
                vgpus.append(VGPUDevice(pci=device, capability=capability))
        return vgpus


def new_mock_vgpu() -> VGPULib:
    """Return a VGPULib backed by the mocked PCI devices."""
    return VGPULib(MockNvidiaPCI())