import pytest

from gpudevices.device_map import (
    DeviceMap,
    DeviceMapError,
    ReplicatedDevices,
    ReplicatedResource,
    update_device_map_with_replicas,
)
from gpudevices.devices import Device, Devices, TegraDevice, new_annotated_id

DEVICE0 = Device(id="0")
DEVICE0_WITH_INDEX = Device(id="0", index="index")
DEVICE1 = Device(id="1")


@pytest.mark.parametrize(
    "device_map, key, value, expected",
    [
        pytest.param(DeviceMap(), "resource", DEVICE0, {"resource": {"0": DEVICE0}}, id="insert into empty map"),
        pytest.param(
            DeviceMap({"resource": Devices({"0": DEVICE0})}),
            "resource",
            DEVICE1,
            {"resource": {"0": DEVICE0, "1": DEVICE1}},
            id="add to existing resource",
        ),
        pytest.param(
            DeviceMap({"resource": Devices({"0": DEVICE0})}),
            "resource1",
            DEVICE0,
            {"resource": {"0": DEVICE0}, "resource1": {"0": DEVICE0}},
            id="add new resource",
        ),
        pytest.param(
            DeviceMap({"resource": Devices({"0": DEVICE0})}),
            "resource",
            DEVICE0_WITH_INDEX,
            {"resource": {"0": DEVICE0_WITH_INDEX}},
            id="overwrite existing device",
        ),
    ],
)
def test_device_map_insert(device_map, key, value, expected):
    device_map.insert(key, value)
    assert device_map == expected


def _gpus():
    return DeviceMap(
        {
            "gpu": Devices(
                {
                    "GPU-0": Device(id="GPU-0", index="0", paths=["/dev/nvidia0"]),
                    "GPU-1": Device(id="GPU-1", index="1", paths=["/dev/nvidia1"]),
                }
            )
        }
    )


def test_merge():
    target = DeviceMap({"a": Devices({"0": DEVICE0})})
    target.merge(DeviceMap({"a": Devices({"1": DEVICE1}), "b": Devices({"0": DEVICE0})}))
    assert target == {"a": {"0": DEVICE0, "1": DEVICE1}, "b": {"0": DEVICE0}}


def test_is_empty():
    assert DeviceMap().is_empty() is True
    assert DeviceMap({"a": Devices()}).is_empty() is True
    assert DeviceMap({"a": Devices({"0": DEVICE0})}).is_empty() is False


def test_set_entry_with_tegra():
    device_map = DeviceMap()
    device_map.set_entry("gpu", "0", TegraDevice())
    assert list(device_map["gpu"]) == ["tegra"]
    assert device_map["gpu"]["tegra"].index == "0"


class _BrokenInfo(TegraDevice):
    def get_total_memory(self):
        raise RuntimeError("no memory info")


def test_set_entry_error():
    with pytest.raises(DeviceMapError):
        DeviceMap().set_entry("gpu", "0", _BrokenInfo())


def test_ids_to_replicate_unknown_resource():
    resource = ReplicatedResource("other", ReplicatedDevices(all=True), 2)
    assert _gpus().ids_to_replicate(resource) == []


def test_ids_to_replicate_all():
    resource = ReplicatedResource("gpu", ReplicatedDevices(all=True), 2)
    assert sorted(_gpus().ids_to_replicate(resource)) == ["GPU-0", "GPU-1"]


def test_ids_to_replicate_count():
    resource = ReplicatedResource("gpu", ReplicatedDevices(count=1), 2)
    ids = _gpus().ids_to_replicate(resource)
    assert len(ids) == 1
    assert ids[0] in {"GPU-0", "GPU-1"}


def test_ids_to_replicate_count_too_large():
    resource = ReplicatedResource("gpu", ReplicatedDevices(count=3), 2)
    with pytest.raises(DeviceMapError, match="requested 3 devices"):
        _gpus().ids_to_replicate(resource)


def test_ids_to_replicate_refs():
    resource = ReplicatedResource("gpu", ReplicatedDevices(refs=["GPU-1", "0"]), 2)
    assert _gpus().ids_to_replicate(resource) == ["GPU-1", "GPU-0"]


def test_ids_to_replicate_missing_refs():
    by_uuid = ReplicatedResource("gpu", ReplicatedDevices(refs=["GPU-9"]), 2)
    by_index = ReplicatedResource("gpu", ReplicatedDevices(refs=["9"]), 2)
    with pytest.raises(DeviceMapError, match="no matching device with UUID"):
        _gpus().ids_to_replicate(by_uuid)
    with pytest.raises(DeviceMapError, match="no matching device at index"):
        _gpus().ids_to_replicate(by_index)


def test_ids_to_replicate_nothing_selected():
    resource = ReplicatedResource("gpu", ReplicatedDevices(), 2)
    with pytest.raises(DeviceMapError, match="unexpected error"):
        _gpus().ids_to_replicate(resource)


def test_update_with_replicas():
    resource = ReplicatedResource("gpu", ReplicatedDevices(refs=["GPU-0"]), 2)
    updated = update_device_map_with_replicas([resource], _gpus())
    expected = {"GPU-1", new_annotated_id("GPU-0", 0), new_annotated_id("GPU-0", 1)}
    assert set(updated["gpu"]) == expected
    replica = updated["gpu"][new_annotated_id("GPU-0", 1)]
    assert replica.index == "0"
    assert replica.paths == ["/dev/nvidia0"]


def test_update_with_rename():
    resource = ReplicatedResource("gpu", ReplicatedDevices(all=True), 2, rename="gpu.shared")
    updated = update_device_map_with_replicas([resource], _gpus())
    assert "gpu" not in updated
    assert len(updated["gpu.shared"]) == 4
    assert sorted(updated["gpu.shared"].get_uuids()) == ["GPU-0", "GPU-1"]


def test_update_keeps_other_resources_and_original():
    original = _gpus()
    original["mig"] = Devices({"MIG-0": Device(id="MIG-0", index="0:0")})
    resource = ReplicatedResource("gpu", ReplicatedDevices(all=True), 3)
    updated = update_device_map_with_replicas([resource], original)
    assert updated["mig"] is original["mig"]
    assert sorted(original["gpu"]) == ["GPU-0", "GPU-1"]
    assert len(updated["gpu"]) == 6


def test_update_without_replicated_resources_copies_map():
    updated = update_device_map_with_replicas([], _gpus())
    assert updated == _gpus()


def test_update_error_names_resource():
    resource = ReplicatedResource("gpu", ReplicatedDevices(count=5), 2)
    with pytest.raises(DeviceMapError, match="for 'gpu' resource"):
        update_device_map_with_replicas([resource], _gpus())