"""MIG device grouping and the MIG capability device nodes."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable

logger = logging.getLogger(__name__)

NVIDIA_PROC_DRIVER_PATH = "/proc/driver/nvidia"
NVIDIA_CAPABILITIES_PATH = NVIDIA_PROC_DRIVER_PATH + "/capabilities"
NVCAPS_PROC_DRIVER_PATH = "/proc/driver/nvidia-caps"
NVCAPS_MIG_MINORS_PATH = NVCAPS_PROC_DRIVER_PATH + "/mig-minors"
NVCAPS_DEVICE_PATH = "/dev/nvidia-caps"


class DeviceInfo:
    """Devices of a manager, grouped by whether MIG is enabled on them."""

    def __init__(self, manager: Any) -> None:
        self.manager = manager
        self._devices_map: dict[bool, list] | None = None

    def get_devices_map(self) -> dict[bool, list]:
        """Return devices keyed by MIG-enabled state; built on first use."""
        if self._devices_map is not None:
            return self._devices_map
        devices_map: dict[bool, list] = {}
        for device in self.manager.get_devices():
            devices_map.setdefault(bool(device.is_mig_enabled()), []).append(device)
        self._devices_map = devices_map
        return devices_map

    def get_devices_with_mig_enabled(self) -> list:
        """Return the devices with MIG enabled."""
        return self.get_devices_map().get(True, [])

    def get_devices_with_mig_disabled(self) -> list:
        """Return the devices with MIG disabled."""
        return self.get_devices_map().get(False, [])

    def any_mig_enabled_device_is_empty(self) -> bool:
        """Whether any MIG-enabled device has no MIG devices; true if there are none."""
        enabled = self.get_devices_with_mig_enabled()
        if not enabled:
            return True
        return any(not device.get_mig_devices() for device in enabled)

    def get_all_mig_devices(self) -> list:
        """Return the MIG devices of every MIG-enabled device."""
        return [mig for device in self.get_devices_with_mig_enabled() for mig in device.get_mig_devices()]


_NUM = r"[ \t]*([+-]?\d+)"

_LINE_FORMATS: list[tuple[re.Pattern, Callable[[list[int]], str]]] = [
    (
        re.compile(rf"gpu{_NUM}/gi{_NUM}/ci{_NUM}/access{_NUM}"),
        lambda n: f"{NVIDIA_CAPABILITIES_PATH}/gpu{n[0]}/mig/gi{n[1]}/ci{n[2]}/access",
    ),
    (
        re.compile(rf"gpu{_NUM}/gi{_NUM}/access{_NUM}"),
        lambda n: f"{NVIDIA_CAPABILITIES_PATH}/gpu{n[0]}/mig/gi{n[1]}/access",
    ),
    (re.compile(rf"config{_NUM}"), lambda n: f"{NVIDIA_CAPABILITIES_PATH}/mig/config"),
    (re.compile(rf"monitor{_NUM}"), lambda n: f"{NVIDIA_CAPABILITIES_PATH}/mig/monitor"),
]


def parse_mig_minors_line(line: str) -> tuple[str, int]:
    """Parse a line of the MIG minors file into a capability path and device minor."""
    for pattern, build_path in _LINE_FORMATS:
        match = pattern.match(line)
        if match:
            numbers = [int(group) for group in match.groups()]
            return build_path(numbers), numbers[-1]
    raise ValueError(f"unparsable line: {line}")


def get_mig_capability_device_paths(minors_path: str = NVCAPS_MIG_MINORS_PATH) -> dict[str, str]:
    """Map each MIG capability path to its device node; empty if not MIG capable."""
    try:
        minors_file = open(minors_path, encoding="utf-8")
    except FileNotFoundError:
        return {}
    paths: dict[str, str] = {}
    with minors_file:
        for raw in minors_file:
            line = raw.rstrip("\r\n")
            try:
                cap_path, minor = parse_mig_minors_line(line)
            except ValueError as err:
                logger.error("Skipping line in MIG minors file: %s", err)
                continue
            paths[cap_path] = f"{NVCAPS_DEVICE_PATH}/nvidia-cap{minor}"
    return paths