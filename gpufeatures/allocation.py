"""Allocation responses of the GPU device plugin: environment, mounts, device specs and CDI."""

from __future__ import annotations

import logging
import os
import posixpath
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from gpufeatures.labels import DEFAULT_CDI_ANNOTATION_PREFIX, Config

logger = logging.getLogger(__name__)

DEVICE_LIST_ENVVAR = "NVIDIA_VISIBLE_DEVICES"
DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH = "/dev/null"
DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT = "/var/run/nvidia-container-devices"
CDI_PLUGIN_NAME = "nvidia-device-plugin"

_OPTIONAL_DEVICE_PATHS = frozenset(
    {
        "/dev/nvidiactl",
        "/dev/nvidia-uvm",
        "/dev/nvidia-uvm-tools",
        "/dev/nvidia-modeset",
    }
)
_MAX_ANNOTATION_NAME_LENGTH = 63


class DeviceListStrategy(str, Enum):
    """How the allocated devices are passed to the container."""

    ENVVAR = "envvar"
    VOLUME_MOUNTS = "volume-mounts"
    CDI_ANNOTATIONS = "cdi-annotations"


class AllocationError(Exception):
    """Raised when an allocation request cannot be answered."""


@dataclass(frozen=True)
class Mount:
    """A host path mounted into the container."""

    host_path: str
    container_path: str


@dataclass(frozen=True)
class DeviceSpec:
    """A device node made available in the container."""

    container_path: str
    host_path: str
    permissions: str = "rw"


@dataclass
class ContainerAllocateResponse:
    """What the container receives for one allocation request."""

    envs: dict[str, str] = field(default_factory=dict)
    mounts: list[Mount] = field(default_factory=list)
    devices: list[DeviceSpec] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PluginOptions:
    """Optional features the plugin advertises to the kubelet."""

    get_preferred_allocation_available: bool = True


def _join(*parts: str) -> str:
    """Join path elements and clean the result, ignoring empty elements."""
    present = [part for part in parts if part]
    if not present:
        return ""
    return posixpath.normpath("/".join(present))


def _parse_strategies(values: Iterable[str]) -> frozenset[DeviceListStrategy]:
    strategies = set()
    for value in values:
        try:
            strategies.add(DeviceListStrategy(value))
        except ValueError:
            logger.warning("Ignoring invalid device list strategies: unknown strategy %r", value)
            return frozenset()
    return frozenset(strategies)


def _validate_annotation_name(name: str) -> None:
    if len(name) > _MAX_ANNOTATION_NAME_LENGTH:
        raise ValueError(f"invalid plugin+deviceID {name!r}, too long")
    if not name[0].isalnum():
        raise ValueError(f"invalid name {name!r}, should start with letter or digit")
    if not name[-1].isalnum():
        raise ValueError(f"invalid name {name!r}, should end with letter or digit")
    for char in name[1:-1]:
        if not (char.isalnum() or char in "-_."):
            raise ValueError(f"invalid name {name!r}, invalid character {char!r}")


def _validate_qualified_name(device: str) -> None:
    kind, sep, name = device.partition("=")
    vendor, slash, device_class = kind.partition("/")
    if not sep or not slash or not vendor or not device_class or not name:
        raise ValueError(f"invalid qualified device name {device!r}")


def update_cdi_annotations(
    annotations: dict[str, str] | None,
    plugin_name: str,
    device_id: str,
    devices: Iterable[str],
) -> dict[str, str]:
    """Return ``annotations`` extended with the CDI annotation naming ``devices``."""
    try:
        if not plugin_name:
            raise ValueError("invalid plugin name, empty")
        if not device_id:
            raise ValueError("invalid deviceID, empty")
        name = f"{plugin_name}_{device_id.replace('/', '_')}"
        _validate_annotation_name(name)
        key = DEFAULT_CDI_ANNOTATION_PREFIX + name

        devices = list(devices)
        for device in devices:
            _validate_qualified_name(device)
    except ValueError as err:
        raise AllocationError(f"CDI annotation failed: {err}") from err

    result = dict(annotations or {})
    if key in result:
        raise AllocationError(f"CDI annotation failed, key {key!r} used")
    result[key] = ",".join(devices)
    return result


class DevicePlugin:
    """Answers the kubelet's allocation requests for one resource."""

    options = PluginOptions()

    def __init__(
        self,
        config: Config,
        resource_manager: Any = None,
        cdi_handler: Any = None,
        cdi_enabled: bool = False,
    ) -> None:
        self.config = config
        self.resource_manager = resource_manager
        self.cdi_handler = cdi_handler
        self.cdi_enabled = cdi_enabled
        self.device_list_envvar = DEVICE_LIST_ENVVAR
        self.device_list_strategies = _parse_strategies(config.device_list_strategy)
        self.cdi_annotation_prefix = config.cdi_annotation_prefix

    def devices(self):
        """Return the full set of devices of the resource."""
        return self.resource_manager.devices()

    def get_preferred_allocation(self, requests: Iterable[Any]) -> list[list[str]]:
        """Return the preferred device IDs for each container request."""
        responses = []
        for request in requests:
            try:
                device_ids = self.resource_manager.get_preferred_allocation(
                    request.available_device_ids,
                    request.must_include_device_ids,
                    int(request.allocation_size),
                )
            except Exception as err:
                raise AllocationError(
                    f"error getting list of preferred allocation devices: {err}"
                ) from err
            responses.append(list(device_ids))
        return responses

    def get_allocate_response(
        self, device_ids: Iterable[str], request_ids: Iterable[str]
    ) -> ContainerAllocateResponse:
        """Build the response for the devices ``device_ids`` requested as ``request_ids``."""
        device_ids = list(device_ids)
        request_ids = list(request_ids)
        response_id = str(uuid.uuid4())
        try:
            response = self.get_allocate_response_for_cdi(response_id, device_ids)
        except AllocationError as err:
            raise AllocationError(f"failed to get allocate response for CDI: {err}") from err

        if DeviceListStrategy.ENVVAR in self.device_list_strategies:
            response.envs = self.api_envs(self.device_list_envvar, device_ids)
        if DeviceListStrategy.VOLUME_MOUNTS in self.device_list_strategies:
            response.envs = self.api_envs(
                self.device_list_envvar, [DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT]
            )
            response.mounts = self.api_mounts(device_ids)
        if self.config.pass_device_specs:
            response.devices = self.api_device_specs(self.config.nvidia_driver_root, request_ids)
        if self.config.gds_enabled:
            response.envs["NVIDIA_GDS"] = "enabled"
        if self.config.mofed_enabled:
            response.envs["NVIDIA_MOFED"] = "enabled"
        return response

    def get_allocate_response_for_cdi(
        self, response_id: str, device_ids: Iterable[str]
    ) -> ContainerAllocateResponse:
        """Return the response holding the annotations that trigger CDI injection."""
        response = ContainerAllocateResponse()
        if not self.cdi_enabled:
            return response

        devices = [self.cdi_handler.qualified_name("gpu", device_id) for device_id in device_ids or ()]
        if self.config.gds_enabled:
            devices.append(self.cdi_handler.qualified_name("gds", "all"))
        if self.config.mofed_enabled:
            devices.append(self.cdi_handler.qualified_name("mofed", "all"))

        if not devices:
            return response

        if DeviceListStrategy.CDI_ANNOTATIONS in self.device_list_strategies:
            response.annotations = self.get_cdi_device_annotations(response_id, devices)
        return response

    def get_cdi_device_annotations(self, response_id: str, devices: Iterable[str]) -> dict[str, str]:
        """Return the CDI annotations for ``devices``, using the configured prefix."""
        try:
            annotations = update_cdi_annotations({}, CDI_PLUGIN_NAME, response_id, devices)
        except AllocationError as err:
            raise AllocationError(f"failed to add CDI annotations: {err}") from err

        if self.cdi_annotation_prefix == DEFAULT_CDI_ANNOTATION_PREFIX:
            return annotations
        return {
            self.cdi_annotation_prefix + key.removeprefix(DEFAULT_CDI_ANNOTATION_PREFIX): value
            for key, value in annotations.items()
        }

    def api_envs(self, envvar: str, device_ids: Iterable[str]) -> dict[str, str]:
        """Return the environment listing ``device_ids`` in ``envvar``."""
        return {envvar: ",".join(device_ids)}

    def api_mounts(self, device_ids: Iterable[str]) -> list[Mount]:
        """Return one marker mount per device ID."""
        return [
            Mount(
                host_path=DEVICE_LIST_AS_VOLUME_MOUNTS_HOST_PATH,
                container_path=_join(DEVICE_LIST_AS_VOLUME_MOUNTS_CONTAINER_PATH_ROOT, device_id),
            )
            for device_id in device_ids
        ]

    def api_device_specs(self, driver_root: str, ids: Iterable[str]) -> list[DeviceSpec]:
        """Return the device nodes of ``ids``; optional nodes only when they exist."""
        specs = []
        for path in self.resource_manager.get_device_paths(list(ids)):
            if path in _OPTIONAL_DEVICE_PATHS and not os.path.exists(path):
                continue
            specs.append(
                DeviceSpec(
                    container_path=path,
                    host_path=_join(driver_root, path),
                    permissions="rw",
                )
            )
        return specs