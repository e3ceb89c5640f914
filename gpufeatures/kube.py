"""Facts about the Kubernetes node and namespace the process runs in."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"


def node_name() -> str:
    """Return the name of the node, taken from NODE_NAME."""
    return os.environ.get("NODE_NAME", "")


def get_kubernetes_namespace(namespace_file: str | os.PathLike = NAMESPACE_FILE) -> str:
    """Return the namespace, or an empty string if it cannot be determined.

    The service-account namespace file wins; KUBERNETES_NAMESPACE is the fallback.
    """
    path = Path(namespace_file)
    if path.exists():
        try:
            return path.read_text().strip()
        except OSError:
            pass
    namespace = os.environ.get("KUBERNETES_NAMESPACE", "")
    if not namespace:
        logger.info("KUBERNETES_NAMESPACE environment variable not set")
    return namespace