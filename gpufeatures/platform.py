"""Choosing how devices are discovered on a node, and the manager that finds none."""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    """The way GPU resources are discovered."""

    NVML = "nvml"
    TEGRA = "tegra"
    NULL = "null"


class PlatformError(Exception):
    """Raised when no supported platform is detected and failure was requested."""


class NullManager:
    """A manager that provides no plugins."""

    def get_plugins(self) -> list:
        """Return an empty list of plugins."""
        return []

    def create_cdi_spec_file(self) -> None:
        """Skip spec creation: this manager has no devices to describe."""
        logger.debug("Skipping CDI spec creation: no devices are managed on this node")


def resolve_mode(has_nvml: bool, is_tegra: bool, fail_on_init_error: bool = False) -> Mode:
    """Pick the discovery mode from what the platform offers."""
    logger.info("Detected %sNVML platform", "" if has_nvml else "non-")
    logger.info("Detected %sTegra platform", "" if is_tegra else "non-")

    if not has_nvml and not is_tegra:
        logger.error("Incompatible platform detected")
        logger.error("If this is a GPU node, did you configure the NVIDIA Container Toolkit?")
        logger.error(
            "If this is not a GPU node, you should set up a toleration or nodeSelector "
            "to only deploy this plugin on GPU nodes"
        )
        if fail_on_init_error:
            raise PlatformError("platform detection failed")
        return Mode.NULL

    # Integrated and discrete GPUs are not supported together on one node.
    if is_tegra:
        if has_nvml:
            logger.warning("Disabling Tegra-based resources on NVML system")
            return Mode.NVML
        return Mode.TEGRA

    return Mode.NVML