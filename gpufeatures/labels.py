"""Node labels, the labelers that produce them, and writing them out."""

from __future__ import annotations

import io
import logging
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from typing import IO, Iterable

logger = logging.getLogger(__name__)

DEFAULT_CDI_ANNOTATION_PREFIX = "cdi.k8s.io/"


class LabelingError(Exception):
    """Raised when labels cannot be generated or written."""


@dataclass
class ReplicatedResource:
    """A resource that is shared by time-slicing into several replicas."""

    name: str
    replicas: int = 0
    rename: str = ""


@dataclass
class Config:
    """Settings that drive label generation and device allocation."""

    mig_strategy: str = "none"
    machine_type_file: str = ""
    no_timestamp: bool = False
    time_slicing_resources: list[ReplicatedResource] = field(default_factory=list)
    fail_requests_greater_than_one: bool = False
    gds_enabled: bool = False
    mofed_enabled: bool = False
    pass_device_specs: bool = False
    nvidia_driver_root: str = "/"
    device_id_strategy: str = "uuid"
    device_list_strategy: list[str] = field(default_factory=lambda: ["envvar"])
    cdi_annotation_prefix: str = DEFAULT_CDI_ANNOTATION_PREFIX


class Labels(dict):
    """A mapping of label names to values; it is also a labeler of itself."""

    def labels(self) -> "Labels":
        """Return these labels."""
        return self

    def write_to(self, output: IO[str]) -> int:
        """Write one ``key=value`` line per label and return the characters written."""
        total = 0
        for key, value in self.items():
            line = f"{key}={value}\n"
            output.write(line)
            total += len(line)
        return total

    def update_file(self, path: str | os.PathLike) -> None:
        """Write the labels to ``path`` atomically, or to stdout if ``path`` is empty."""
        logger.info("Writing labels to output file %s", path)
        if not path:
            self.write_to(sys.stdout)
            return
        buffer = io.StringIO()
        self.write_to(buffer)
        try:
            write_file_atomically(path, buffer.getvalue().encode("utf-8"), 0o644)
        except LabelingError as err:
            raise LabelingError(f"error atomically writing file '{path}': {err}") from err


class EmptyLabeler:
    """A labeler that produces no labels."""

    def labels(self) -> Labels:
        """Return an empty set of labels."""
        return Labels()


class MergedLabeler:
    """A composite labeler; labels from later labelers overwrite earlier ones."""

    def __init__(self, labelers: Iterable = ()) -> None:
        self.labelers = tuple(labelers)

    def labels(self) -> Labels:
        """Return the union of the labels of all labelers."""
        merged = Labels()
        for labeler in self.labelers:
            try:
                produced = labeler.labels()
            except Exception as err:
                raise LabelingError(f"error generating labels: {err}") from err
            if produced:
                merged.update(produced)
        return merged


def merge(*labelers) -> MergedLabeler:
    """Combine several labelers into one."""
    return MergedLabeler(labelers)


def write_file_atomically(path: str | os.PathLike, contents: bytes | str, perm: int = 0o644) -> None:
    """Write ``contents`` to ``path`` through a temporary file and a rename."""
    if isinstance(contents, str):
        contents = contents.encode("utf-8")
    abs_path = os.path.abspath(path)
    tmp_dir = os.path.join(os.path.dirname(abs_path), "gfd-tmp")

    try:
        os.makedirs(tmp_dir, exist_ok=True)
    except OSError as err:
        raise LabelingError(f"failed to create temporary directory: {err}") from err

    try:
        fd, tmp_name = tempfile.mkstemp(prefix="gfd-", dir=tmp_dir)
    except OSError as err:
        shutil.rmtree(tmp_dir, ignore_errors=True)
        raise LabelingError(f"fail to create temporary output file: {err}") from err

    step = f"error writing temporary file '{tmp_name}'"
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(contents)
        step = f"error moving temporary file to '{path}'"
        os.replace(tmp_name, abs_path)
        step = f"error setting permissions on '{path}'"
        os.chmod(abs_path, perm)
    except OSError as err:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        shutil.rmtree(tmp_dir, ignore_errors=True)
        raise LabelingError(f"{step}: {err}") from err