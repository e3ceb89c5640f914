import pytest

from gpufeatures.labels import Config, LabelingError, Labels, ReplicatedResource
from gpufeatures.resource_labeler import (
    ResourceLabeler,
    get_arch_family,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
)


class FakeDevice:
    def __init__(self, name="MOCKMODEL", memory=300, compute=(8, 0), attributes=None):
        self.name = name
        self.memory = memory
        self.compute = compute
        self.attributes = attributes or {}
        self.parent = None

    def get_name(self):
        return self.name

    def get_total_memory_mb(self):
        return self.memory

    def get_cuda_compute_capability(self):
        return self.compute

    def get_attributes(self):
        return dict(self.attributes)

    def get_device_handle_from_mig_device_handle(self):
        return self.parent


def full_gpu():
    return FakeDevice()


def mig_device(gi, ci, memory):
    attributes = {
        "memory": memory,
        "multiprocessors": 0,
        "slices.gi": gi,
        "slices.ci": ci,
        "engines.copy": 0,
        "engines.decoder": 0,
        "engines.encoder": 0,
        "engines.jpeg": 0,
        "engines.ofa": 0,
    }
    device = FakeDevice(name=f"{gi}g.{memory}gb", memory=memory, compute=(0, 0), attributes=attributes)
    device.parent = FakeDevice(compute=(0, 0))
    return device


def config_with(*resources):
    return Config(time_slicing_resources=list(resources))


GPU_BASE = {
    "nvidia.com/gpu.count": "1",
    "nvidia.com/gpu.memory": "300",
    "nvidia.com/gpu.family": "ampere",
    "nvidia.com/gpu.compute.major": "8",
    "nvidia.com/gpu.compute.minor": "0",
}


@pytest.mark.parametrize(
    "count, resources, expected",
    [
        (0, [], {}),
        (1, [], {**GPU_BASE, "nvidia.com/gpu.replicas": "1", "nvidia.com/gpu.product": "MOCKMODEL"}),
        (
            1,
            [ReplicatedResource(name="nvidia.com/not-gpu", replicas=2)],
            {**GPU_BASE, "nvidia.com/gpu.replicas": "1", "nvidia.com/gpu.product": "MOCKMODEL"},
        ),
        (
            1,
            [ReplicatedResource(name="nvidia.com/gpu", replicas=2)],
            {**GPU_BASE, "nvidia.com/gpu.replicas": "2", "nvidia.com/gpu.product": "MOCKMODEL-SHARED"},
        ),
        (
            1,
            [ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)],
            {**GPU_BASE, "nvidia.com/gpu.replicas": "2", "nvidia.com/gpu.product": "MOCKMODEL"},
        ),
    ],
    ids=["zero-count", "no-sharing", "non-matching", "shared", "renamed"],
)
def test_gpu_resource_labeler(count, resources, expected):
    labeler = new_gpu_resource_labeler(config_with(*resources), full_gpu(), count)
    assert labeler.labels() == expected


def mig_labels(prefix, replicas, product):
    return {
        f"{prefix}.count": "1",
        f"{prefix}.replicas": replicas,
        f"{prefix}.memory": "300",
        f"{prefix}.product": product,
        f"{prefix}.multiprocessors": "0",
        f"{prefix}.slices.gi": "1",
        f"{prefix}.slices.ci": "2",
        f"{prefix}.engines.copy": "0",
        f"{prefix}.engines.decoder": "0",
        f"{prefix}.engines.encoder": "0",
        f"{prefix}.engines.jpeg": "0",
        f"{prefix}.engines.ofa": "0",
    }


@pytest.mark.parametrize(
    "resource_name, count, resources, expected",
    [
        ("", 0, [], {}),
        ("nvidia.com/gpu", 1, [], mig_labels("nvidia.com/gpu", "1", "MOCKMODEL-MIG-1g.300gb")),
        (
            "nvidia.com/gpu",
            1,
            [ReplicatedResource(name="nvidia.com/gpu", replicas=2)],
            mig_labels("nvidia.com/gpu", "2", "MOCKMODEL-MIG-1g.300gb-SHARED"),
        ),
        (
            "nvidia.com/gpu",
            1,
            [ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2)],
            mig_labels("nvidia.com/gpu", "2", "MOCKMODEL-MIG-1g.300gb"),
        ),
        (
            "nvidia.com/mig-1g.1gb",
            1,
            [
                ReplicatedResource(name="nvidia.com/gpu", rename="nvidia.com/gpu.shared", replicas=2),
                ReplicatedResource(name="nvidia.com/mig-1g.1gb", replicas=2),
            ],
            mig_labels("nvidia.com/mig-1g.1gb", "2", "MOCKMODEL-MIG-1g.300gb-SHARED"),
        ),
        (
            "nvidia.com/mig-1g.1gb",
            1,
            [
                ReplicatedResource(
                    name="nvidia.com/mig-1g.1gb", rename="nvidia.com/mig-1g.1gb.shared", replicas=2
                )
            ],
            mig_labels("nvidia.com/mig-1g.1gb", "2", "MOCKMODEL-MIG-1g.300gb"),
        ),
    ],
    ids=["zero-count", "no-sharing", "shared", "renamed", "mixed-shared", "mixed-renamed"],
)
def test_mig_resource_labeler(resource_name, count, resources, expected):
    labeler = new_mig_resource_labeler(resource_name, config_with(*resources), mig_device(1, 2, 300), count)
    assert labeler.labels() == expected


def test_without_sharing_has_zero_replicas():
    labels = new_gpu_resource_labeler_without_sharing(full_gpu(), 3).labels()
    assert labels["nvidia.com/gpu.replicas"] == "0"
    assert labels["nvidia.com/gpu.count"] == "3"
    assert labels["nvidia.com/gpu.product"] == "MOCKMODEL"


def test_zero_memory_and_compute_omit_labels():
    device = FakeDevice(memory=0, compute=(0, 0))
    labels = new_gpu_resource_labeler(Config(), device, 1).labels()
    assert labels == {
        "nvidia.com/gpu.count": "1",
        "nvidia.com/gpu.replicas": "1",
        "nvidia.com/gpu.product": "MOCKMODEL",
    }


def test_device_error_is_wrapped():
    class Broken(FakeDevice):
        def get_name(self):
            raise RuntimeError("boom")

    with pytest.raises(LabelingError, match="failed to get device model: boom"):
        new_gpu_resource_labeler(Config(), Broken(), 1)


def test_product_label_replaces_spaces_and_skips_empty_parts():
    labeler = ResourceLabeler("nvidia.com/gpu", Config())
    assert labeler.product_label("Tesla V100", "", "SXM2 16GB") == {
        "nvidia.com/gpu.product": "Tesla-V100-SXM2-16GB"
    }
    assert labeler.product_label("", "") == {}


def test_update_label_formats_booleans():
    labeler = ResourceLabeler("nvidia.com/gpu")
    labels = Labels()
    labeler.update_label(labels, "flag", True)
    assert labels == {"nvidia.com/gpu.flag": "true"}
    assert labeler.key("count") == "nvidia.com/gpu.count"


def test_replication_queries():
    shared = ResourceLabeler(
        "nvidia.com/gpu", config_with(ReplicatedResource(name="nvidia.com/gpu", rename="x", replicas=4))
    )
    assert shared.is_shared() is True
    assert shared.is_renamed() is True
    assert shared.replicas_label() == {"nvidia.com/gpu.replicas": "4"}
    assert ResourceLabeler("nvidia.com/gpu").sharing_disabled() is True
    assert ResourceLabeler("nvidia.com/gpu").replication_info() is None


@pytest.mark.parametrize(
    "major, minor, family",
    [
        (1, 0, "tesla"),
        (2, 1, "fermi"),
        (3, 5, "kepler"),
        (5, 2, "maxwell"),
        (6, 1, "pascal"),
        (7, 0, "volta"),
        (7, 5, "turing"),
        (8, 6, "ampere"),
        (9, 0, "hopper"),
        (4, 0, "undefined"),
    ],
)
def test_get_arch_family(major, minor, family):
    assert get_arch_family(major, minor) == family