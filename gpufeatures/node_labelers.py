"""Labelers for node-wide facts: machine type, MIG strategy, timestamp and vGPU."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from gpufeatures.labels import Config, EmptyLabeler, LabelingError, Labels

logger = logging.getLogger(__name__)

MACHINE_TYPE_UNKNOWN = "unknown"
_MIG_STRATEGY_NONE = "none"


def get_machine_type(path: str) -> str:
    """Read the machine type from ``path``; an empty path means unknown."""
    if not path:
        return MACHINE_TYPE_UNKNOWN
    try:
        data = Path(path).read_text()
    except OSError as err:
        raise LabelingError(f"could not open machine type file: {err}") from err
    return data.strip()


def new_machine_type_labeler(machine_type_path: str) -> Labels:
    """Return the machine type label, falling back to unknown on errors."""
    try:
        machine_type = get_machine_type(machine_type_path)
    except LabelingError as err:
        logger.warning("Error getting machine type from %s: %s", machine_type_path, err)
        machine_type = MACHINE_TYPE_UNKNOWN
    return Labels({"nvidia.com/gpu.machine": machine_type.replace(" ", "-")})


def mig_strategy_labeler(strategy: str):
    """Return a labeler that records the MIG strategy, unless it is none."""
    if strategy == _MIG_STRATEGY_NONE:
        return EmptyLabeler()
    return Labels({"nvidia.com/mig.strategy": strategy})


def new_timestamp_labeler(config: Config):
    """Return the timestamp label, unless timestamps are disabled."""
    if config.no_timestamp:
        return EmptyLabeler()
    return Labels({"nvidia.com/gfd.timestamp": str(int(time.time()))})


@dataclass
class VGPULabeler:
    """Labels describing the vGPU devices on the node."""

    lib: Any

    def labels(self) -> Labels:
        """Return the vGPU presence and host driver labels."""
        try:
            devices = list(self.lib.devices())
        except Exception as err:
            raise LabelingError(f"unable to get vGPU devices: {err}") from err
        labels = Labels()
        if devices:
            labels["nvidia.com/vgpu.present"] = "true"
        for device in devices:
            try:
                info = device.get_info()
            except Exception as err:
                raise LabelingError(f"error getting vGPU device info: {err}") from err
            labels["nvidia.com/vgpu.host-driver-version"] = info.host_driver_version
            labels["nvidia.com/vgpu.host-driver-branch"] = info.host_driver_branch
        return labels