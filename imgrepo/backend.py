# imgrepo/backend.py
"""
Image conversion backends.

A backend computes content hashes of disk images, copies them into
repository storage (optionally as a delta against a parent image),
inspects stored images and rebases them onto their parents.

The default backend drives qemu-img and guestfish.
"""

import hashlib
import json
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import BackendError

logger = logging.getLogger(__name__)

IMAGE_FORMAT = "qcow2"


def file_hash(path: Path, algorithm: str = "sha1") -> str:
    """
    Compute hash of a file's bytes.

    Args:
        path: File to hash
        algorithm: Hash algorithm name accepted by hashlib

    Returns:
        Full hex digest
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class Backend(ABC):
    """Base class for image conversion backends."""

    @abstractmethod
    def compute_hash(self, path: Path) -> str:
        """Return a hash of the image content, stable across storage layouts."""
        pass

    @abstractmethod
    def copy(self, source: Path, dest: Path, parent: Optional[Path] = None) -> Path:
        """
        Store source at dest.

        Args:
            source: Image to copy
            dest: Destination path in repository storage
            parent: If set, store dest as a delta against this image

        Returns:
            dest
        """
        pass

    @abstractmethod
    def info(self, path: Path) -> Dict[str, Any]:
        """
        Inspect a stored image.

        Returns a mapping containing at least virtual-size, actual-size,
        format and format-specific.
        """
        pass

    @abstractmethod
    def rebase(self, path: Path, parent: str) -> None:
        """Point the delta base of path at parent (may be relative to path)."""
        pass


def _run(cmd: List[str], action: str) -> str:
    logger.debug(f"{action}: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except FileNotFoundError as e:
        raise BackendError(f"{action} failed: {cmd[0]} not installed") from e

    if result.returncode != 0:
        raise BackendError(f"{action} failed: {result.stderr.strip()}")

    return result.stdout


class QemuImgBackend(Backend):
    """
    Backend built on qemu-img and libguestfs.

    The content hash is the SHA-1 of the guest-visible block device, so
    the same disk contents hash identically whether stored standalone
    or as a delta.
    """

    def __init__(self, qemu_img: str = "qemu-img", guestfish: str = "guestfish"):
        self.qemu_img = qemu_img
        self.guestfish = guestfish

    def compute_hash(self, path: Path) -> str:
        cmd = [
            self.guestfish, "--ro", "-a", str(path),
            "run", ":", "checksum-device", "sha1", "/dev/sda",
        ]
        digest = _run(cmd, "Hash").strip()
        if not digest:
            raise BackendError(f"Hash failed: no output for {path}")
        return digest

    def copy(self, source: Path, dest: Path, parent: Optional[Path] = None) -> Path:
        dest.parent.mkdir(parents=True, exist_ok=True)

        cmd = [self.qemu_img, "convert", "-O", IMAGE_FORMAT]
        if parent is not None:
            cmd.extend(["-o", f"backing_file={parent},backing_fmt={IMAGE_FORMAT}"])
        cmd.extend([str(source), str(dest)])

        _run(cmd, "Copy")
        return dest

    def info(self, path: Path) -> Dict[str, Any]:
        cmd = [self.qemu_img, "info", "--output=json", str(path)]
        output = _run(cmd, "Info")
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise BackendError(f"Info failed: could not parse output: {e}") from e

    def rebase(self, path: Path, parent: str) -> None:
        cmd = [
            self.qemu_img, "rebase", "-u",
            "-b", parent, "-F", IMAGE_FORMAT,
            str(path),
        ]
        _run(cmd, "Rebase")
