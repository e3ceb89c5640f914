"""GPU node feature labels, MIG strategy handling and device-plugin allocation responses."""

__version__ = "0.14.1"