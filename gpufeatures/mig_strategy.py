"""Resource labels for full GPUs and MIG devices under each MIG strategy."""

from __future__ import annotations

import logging
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping

from gpufeatures.labels import Config, EmptyLabeler, LabelingError, Labels, MergedLabeler, merge
from gpufeatures.mig import DeviceInfo
from gpufeatures.node_labelers import mig_strategy_labeler
from gpufeatures.resource_labeler import (
    FULL_GPU_RESOURCE_NAME,
    ResourceLabeler,
    new_gpu_resource_labeler,
    new_gpu_resource_labeler_without_sharing,
    new_mig_resource_labeler,
)

logger = logging.getLogger(__name__)


class MigStrategy(str, Enum):
    """How MIG devices are exposed as resources."""

    NONE = "none"
    SINGLE = "single"
    MIXED = "mixed"


@dataclass
class _MigResource:
    name: str
    device: Any
    count: int = 0


@contextmanager
def _errors_as(message: str) -> Iterator[None]:
    try:
        yield
    except Exception as err:
        raise LabelingError(f"{message}: {err}") from err


def new_resource_labeler(manager: Any, config: Config):
    """Return a labeler for full GPUs plus the labels of the configured MIG strategy."""
    with _errors_as("error getting devices"):
        devices = list(manager.get_devices())
    if not devices:
        return EmptyLabeler()

    with _errors_as("failed to construct GPU labeler"):
        full_gpu_labeler = new_gpu_labelers(manager, config)

    if config.mig_strategy == MigStrategy.NONE:
        return full_gpu_labeler

    with _errors_as("failed to construct MIG resource labeler"):
        mig_labeler = new_mig_labeler(manager, config)

    return merge(full_gpu_labeler, mig_labeler)


def new_mig_labeler(manager: Any, config: Config):
    """Return the MIG labeler for the configured strategy."""
    try:
        strategy = MigStrategy(config.mig_strategy)
    except ValueError:
        raise LabelingError(f"unknown strategy: {config.mig_strategy}") from None

    if strategy is MigStrategy.NONE:
        labeler = EmptyLabeler()
    elif strategy is MigStrategy.SINGLE:
        with _errors_as("failed to create labeler for mig-strategy=single"):
            labeler = new_mig_strategy_single_labeler(manager, config)
    else:
        with _errors_as("failed to create labeler for mig-strategy=mixed"):
            labeler = new_mig_strategy_mixed_labeler(manager, config)

    return merge(mig_strategy_labeler(strategy.value), labeler)


def new_gpu_labelers(manager: Any, config: Config) -> Labels:
    """Return labels for full GPUs; MIG-enabled GPUs are labelled without sharing."""
    device_info = DeviceInfo(manager)
    with _errors_as("error getting map of devices"):
        devices_by_mig_enabled = device_info.get_devices_map()
    if not devices_by_mig_enabled:
        raise LabelingError("no GPU devices detected")

    counts: Counter[str] = Counter()
    mig_enabled_devices: dict[str, Any] = {}
    full_gpus: dict[str, Any] = {}
    for enabled, target in ((True, mig_enabled_devices), (False, full_gpus)):
        for device in devices_by_mig_enabled.get(enabled, []):
            with _errors_as("error getting device name"):
                name = device.get_name()
            target[name] = device
            counts[name] += 1

    if len(counts) > 1:
        logger.warning("Multiple device types detected: %s", list(counts))

    labelers = []
    for name, device in mig_enabled_devices.items():
        with _errors_as("failed to construct labeler"):
            labelers.append(new_gpu_resource_labeler_without_sharing(device, counts[name]))
    # Full GPUs override MIG-enabled GPUs of the same name.
    for name, device in full_gpus.items():
        with _errors_as("failed to construct labeler"):
            labelers.append(new_gpu_resource_labeler(config, device, counts[name]))

    return MergedLabeler(labelers).labels()


def _collect_mig_resources(device_info: DeviceInfo, resource_name_for) -> dict[str, _MigResource]:
    with _errors_as("unable to retrieve list of MIG devices"):
        migs = device_info.get_all_mig_devices()
    resources: dict[str, _MigResource] = {}
    for mig in migs:
        with _errors_as("unable to get MIG device name"):
            name = mig.get_name()
        resource = resources.setdefault(name, _MigResource(name=resource_name_for(name), device=mig))
        resource.count += 1
    return resources


def new_mig_strategy_single_labeler(manager: Any, config: Config):
    """Return labels for the single strategy, or invalid labels if it does not apply."""
    device_info = DeviceInfo(manager)
    with _errors_as("unabled to retrieve list of MIG-enabled devices"):
        mig_enabled = device_info.get_devices_with_mig_enabled()
    # Without MIG-enabled devices this is the same as the none strategy.
    if not mig_enabled:
        return EmptyLabeler()

    with _errors_as("failed to check for empty MIG-enabled devices"):
        has_empty = device_info.any_mig_enabled_device_is_empty()
    if has_empty:
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "at least one MIG device is enabled but empty"
        )

    with _errors_as("unabled to retrieve list of non-MIG-enabled devices"):
        mig_disabled = device_info.get_devices_with_mig_disabled()
    if mig_disabled:
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "devices with MIG enabled and disable detected"
        )

    resources = _collect_mig_resources(device_info, lambda name: FULL_GPU_RESOURCE_NAME)
    if len(resources) != 1:
        return new_invalid_mig_strategy_labeler(
            mig_enabled[0], "more than one MIG device type present on node"
        )

    return new_mig_device_labelers(resources, config)


def new_invalid_mig_strategy_labeler(device: Any, reason: str) -> Labels:
    """Return the labels that mark the single strategy as invalid on this node."""
    logger.warning("Invalid configuration detected for mig-strategy=single: %s", reason)
    with _errors_as("failed to get device model"):
        model = device.get_name()

    labeler = ResourceLabeler(FULL_GPU_RESOURCE_NAME)
    labels = labeler.product_label(model, "MIG", "INVALID")
    for suffix in ("count", "replicas", "memory"):
        labeler.update_label(labels, suffix, 0)
    return labels


def new_mig_strategy_mixed_labeler(manager: Any, config: Config):
    """Return labels for each MIG profile as its own resource.

    MIG-enabled devices that expose no MIG devices are ignored.
    """
    device_info = DeviceInfo(manager)
    resources = _collect_mig_resources(device_info, lambda name: f"nvidia.com/mig-{name}")
    return new_mig_device_labelers(resources, config)


def new_mig_device_labelers(resources: Mapping[str, _MigResource], config: Config) -> MergedLabeler:
    """Return one MIG resource labeler per collected MIG resource."""
    labelers = []
    for resource in resources.values():
        with _errors_as("failed to construct labeler"):
            labelers.append(
                new_mig_resource_labeler(resource.name, config, resource.device, resource.count)
            )
    return MergedLabeler(labelers)