"""PCI vGPU detection, device maps, replica allocation and health-check helpers."""

__version__ = "0.14.4"
__all__ = ["pci", "vgpu", "devices", "device_map", "resource", "health"]