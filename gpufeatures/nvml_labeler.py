"""The labelers that describe a node's GPUs as reported by the management library."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from gpufeatures.labels import Config, EmptyLabeler, LabelingError, Labels, merge
from gpufeatures.mig_strategy import new_resource_labeler
from gpufeatures.node_labelers import VGPULabeler, new_machine_type_labeler


@contextmanager
def _errors_as(message: str) -> Iterator[None]:
    try:
        yield
    except Exception as err:
        raise LabelingError(f"{message}: {err}") from err


def new_nvml_labeler(manager: Any, config: Config):
    """Return the machine, version, MIG capability and resource labelers combined."""
    with _errors_as("failed to initialize NVML"):
        manager.init()
    try:
        with _errors_as("error getting devices"):
            devices = list(manager.get_devices())
        if not devices:
            return EmptyLabeler()

        machine_type_labeler = new_machine_type_labeler(config.machine_type_file)
        with _errors_as("failed to construct version labeler"):
            version_labeler = new_version_labeler(manager)
        with _errors_as("error creating mig capability labeler"):
            mig_capability_labeler = new_mig_capability_labeler(manager)
        with _errors_as("error creating resource labeler"):
            resource_labeler = new_resource_labeler(manager, config)

        return merge(
            machine_type_labeler,
            version_labeler,
            mig_capability_labeler,
            resource_labeler,
        )
    finally:
        manager.shutdown()


def new_version_labeler(manager: Any) -> Labels:
    """Return the driver and CUDA runtime version labels."""
    with _errors_as("error getting driver version"):
        driver_version = manager.get_driver_version()

    parts = driver_version.split(".")
    if not 2 <= len(parts) <= 3:
        raise LabelingError(
            f'error getting driver version: Version "{driver_version}" does not match format "X.Y[.Z]"'
        )
    driver_major, driver_minor = parts[0], parts[1]
    driver_rev = parts[2] if len(parts) > 2 else ""

    with _errors_as("error getting cuda driver version"):
        cuda_major, cuda_minor = manager.get_cuda_driver_version()

    return Labels(
        {
            "nvidia.com/cuda.driver.major": driver_major,
            "nvidia.com/cuda.driver.minor": driver_minor,
            "nvidia.com/cuda.driver.rev": driver_rev,
            "nvidia.com/cuda.runtime.major": str(cuda_major),
            "nvidia.com/cuda.runtime.minor": str(cuda_minor),
        }
    )


def new_mig_capability_labeler(manager: Any):
    """Return whether any GPU on the node is MIG capable."""
    devices = list(manager.get_devices())
    if not devices:
        return EmptyLabeler()

    capable = False
    for device in devices:
        with _errors_as("error getting mig capability"):
            capable = bool(device.is_mig_capable())
        if capable:
            break

    return Labels({"nvidia.com/mig.capable": "true" if capable else "false"})


def new_labelers(manager: Any, vgpu: Any, config: Config):
    """Return the GPU labelers and the vGPU labeler combined."""
    with _errors_as("error creating NVML labeler"):
        nvml_labeler = new_nvml_labeler(manager, config)
    return merge(nvml_labeler, VGPULabeler(vgpu))