"""Labels describing a GPU or MIG resource: product, count, replicas and attributes."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from gpufeatures.labels import (
    Config,
    EmptyLabeler,
    LabelingError,
    Labels,
    ReplicatedResource,
    merge,
)

FULL_GPU_RESOURCE_NAME = "nvidia.com/gpu"

_ARCH_FAMILIES = {
    1: "tesla",
    2: "fermi",
    3: "kepler",
    5: "maxwell",
    6: "pascal",
    8: "ampere",
    9: "hopper",
}


@contextmanager
def _errors_as(message: str) -> Iterator[None]:
    try:
        yield
    except Exception as err:
        raise LabelingError(f"{message}: {err}") from err


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class ResourceLabeler:
    """Builds labels of the form ``<resource-name>.<suffix>``.

    A ``config`` of None means sharing is disabled for the resource.
    """

    resource_name: str
    config: Config | None = None

    def single(self, suffix: str, value: Any) -> Labels:
        """Return one label for the resource."""
        return self.labels({suffix: value})

    def labels(self, suffix_values: Mapping[str, Any]) -> Labels:
        """Return one label per suffix in ``suffix_values``."""
        labels = Labels()
        for suffix, value in suffix_values.items():
            self.update_label(labels, suffix, value)
        return labels

    def update_label(self, labels: Labels, suffix: str, value: Any) -> None:
        """Set the label for ``suffix`` in ``labels`` to ``value``."""
        labels[self.key(suffix)] = _format_value(value)

    def key(self, suffix: str) -> str:
        """Return the label key for ``suffix``."""
        return f"{self.resource_name}.{suffix}"

    def base_labeler(self, count: int, *parts: str):
        """Return the product, count and replicas labels."""
        return merge(
            self.product_label(*parts),
            self.count_label(count),
            self.replicas_label(),
        )

    def product_label(self, *parts: str) -> Labels:
        """Return the product label built from the non-empty ``parts``."""
        stripped = [part.replace(" ", "-") for part in parts if part]
        if not stripped:
            return Labels()
        if self.is_shared() and not self.is_renamed():
            stripped.append("SHARED")
        return self.single("product", "-".join(stripped))

    def count_label(self, count: int) -> Labels:
        """Return the count label."""
        return self.single("count", count)

    def replicas_label(self) -> Labels:
        """Return the replicas label: 0 without sharing, else the replica count."""
        replicas = 1
        if self.sharing_disabled():
            replicas = 0
        else:
            info = self.replication_info()
            if info is not None and info.replicas > 1:
                replicas = info.replicas
        return self.single("replicas", replicas)

    def sharing_disabled(self) -> bool:
        """Whether sharing is disabled for this resource."""
        return self.config is None

    def is_shared(self) -> bool:
        """Whether the resource is replicated more than once."""
        info = self.replication_info()
        return info is not None and info.replicas > 1

    def is_renamed(self) -> bool:
        """Whether the shared resource is advertised under another name."""
        info = self.replication_info()
        return info is not None and bool(info.rename)

    def replication_info(self) -> ReplicatedResource | None:
        """Return the time-slicing settings for this resource, if any."""
        if self.config is None:
            return None
        for resource in self.config.time_slicing_resources:
            if resource.name == self.resource_name:
                return resource
        return None


def new_gpu_resource_labeler_without_sharing(device: Any, count: int):
    """Return labels for a full GPU without any sharing applied."""
    return new_gpu_resource_labeler(None, device, count)


def new_gpu_resource_labeler(config: Config | None, device: Any, count: int):
    """Return a labeler for ``count`` full GPUs of the kind of ``device``."""
    if count == 0:
        return EmptyLabeler()

    with _errors_as("failed to get device model"):
        model = device.get_name()
    with _errors_as("failed to get memory info for device"):
        total_memory_mb = device.get_total_memory_mb()

    labeler = ResourceLabeler(FULL_GPU_RESOURCE_NAME, config)

    with _errors_as("failed to create architecture labels"):
        architecture_labels = _new_architecture_labels(labeler, device)

    memory_labeler = labeler.single("memory", total_memory_mb) if total_memory_mb else EmptyLabeler()

    return merge(
        labeler.base_labeler(count, model),
        memory_labeler,
        architecture_labels,
    )


def new_mig_resource_labeler(resource_name: str, config: Config | None, device: Any, count: int):
    """Return a labeler for ``count`` MIG devices of the profile of ``device``."""
    if count == 0:
        return EmptyLabeler()

    with _errors_as("failed to get parent of MIG device"):
        parent = device.get_device_handle_from_mig_device_handle()
    with _errors_as("failed to get device model"):
        model = parent.get_name()
    with _errors_as("failed to get MIG profile name"):
        mig_profile = device.get_name()

    labeler = ResourceLabeler(resource_name, config)

    with _errors_as("unable to get attributes of MIG device"):
        attribute_labels = labeler.labels(device.get_attributes())

    return merge(
        labeler.base_labeler(count, model, "MIG", mig_profile),
        attribute_labels,
    )


def _new_architecture_labels(labeler: ResourceLabeler, device: Any) -> Labels:
    with _errors_as("failed to determine CUDA compute capability"):
        major, minor = device.get_cuda_compute_capability()
    if major == 0:
        return Labels()
    return labeler.labels(
        {
            "family": get_arch_family(major, minor),
            "compute.major": major,
            "compute.minor": minor,
        }
    )


def get_arch_family(compute_major: int, compute_minor: int) -> str:
    """Return the architecture family name for a compute capability."""
    if compute_major == 7:
        return "volta" if compute_minor < 5 else "turing"
    return _ARCH_FAMILIES.get(compute_major, "undefined")