# gpudevices

Pure-Python building blocks for keeping track of the GPUs on a node. The
package has no dependencies outside the standard library.

## Modules

- `gpudevices.pci` reads NVIDIA PCI devices (vendor `0x10de`) from sysfs
  with `NvidiaPCILib(root="/sys/bus/pci/devices")` and walks a device's
  configuration space with `PCIDevice.get_vendor_specific_capability()`.
  `get_byte`, `get_word` and `get_long` read little-endian values from a
  buffer. `MockNvidiaPCI` provides a fixed passthrough GPU and a vGPU.
  Failures raise `PCIError`.
- `gpudevices.vgpu` recognises virtual GPUs by the `"VF"` signature in the
  vendor capability (`is_vgpu_device`), lists them with `VGPULib.devices()`
  and extracts the host driver version and branch with
  `VGPUDevice.get_info()`, which returns an `Info`. Failures raise
  `VGPUError`.
- `gpudevices.devices` models a `Device` and a set of devices keyed by ID,
  `Devices` (subset, difference, IDs, UUIDs, indices, paths, aligned
  allocation support). It handles annotated replica IDs of the form
  `<id>::<n>` (`new_annotated_id`, `split_annotated_id`,
  `strip_annotation`, `has_annotations`, `any_has_annotations`,
  `strip_annotations`), builds devices from any object that reports UUID,
  paths, NUMA node and memory (`build_device`, `TegraDevice`), and spreads
  an allocation evenly over replicated devices (`distributed_alloc`, which
  raises `AllocationError` when too few devices are available).
- `gpudevices.device_map` groups devices per resource name in a
  `DeviceMap` and expands them into replicas as described by
  `ReplicatedResource` / `ReplicatedDevices` with
  `update_device_map_with_replicas`. Failures raise `DeviceMapError`.
- `gpudevices.resource` defines the abstract `Manager` interface, a
  `NullManager` with no devices, and `FallbackToNullOnInitError`, which
  wraps a manager and switches to a null manager if its `init()` raises.
  `total_memory` reads the `memory` attribute of a MIG device.
- `gpudevices.health` computes the Xids to skip during health checks
  (`get_additional_xids`, `skipped_xids`), tells whether the
  `DP_DISABLE_HEALTHCHECKS` setting turns health checks off
  (`health_checks_disabled`), parses MIG device UUIDs
  (`parse_mig_device_uuid`, raising `MigUUIDError`) and returns a device's
  placement (`device_placement`).

## Installation

```
pip install gpudevices
```

## Examples

Reading vGPU host driver information from the built-in mock PCI data:

```python
from gpudevices.vgpu import new_mock_vgpu

for device in new_mock_vgpu().devices():
    info = device.get_info()
    print(info.host_driver_version, info.host_driver_branch)  # 460.16 r460_00
```

Annotated replica IDs:

```python
from gpudevices.devices import new_annotated_id, split_annotated_id

replica = new_annotated_id("GPU-0", 2)   # "GPU-0::2"
split_annotated_id(replica)              # ("GPU-0", 2)
```

Spreading an allocation over replicas:

```python
from gpudevices.devices import Device, Devices, distributed_alloc

ids = ["GPU-0::0", "GPU-0::1", "GPU-1::0", "GPU-1::1"]
devices = Devices((i, Device(id=i, index=i[4])) for i in ids)
distributed_alloc(devices, ids, [], 2)   # ["GPU-0::0", "GPU-1::0"]
```

Extra Xids to ignore during health checks:

```python
from gpudevices.health import get_additional_xids

get_additional_xids("68,not-an-int,67")  # [68, 67]
```

## What the package does not do

It does not talk to the GPU driver or any management library: it cannot
enumerate GPUs or MIG devices by itself, watch for Xid events, or register
with and serve the kubelet. There is no command-line program and no
server. The `Manager` interface has no implementation beyond `NullManager`
and the fallback wrapper; device information comes from the caller, or
from sysfs for PCI devices.

## Running the tests

```
pip install -e .[test]
pytest
```