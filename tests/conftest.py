# tests/conftest.py
"""Shared fixtures for imgrepo tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from imgrepo.backend import Backend, file_hash
from imgrepo.config import Config, RepositoryConfig
from imgrepo.repository import ImageRepository


class FakeBackend(Backend):
    """
    Backend that hashes and copies raw bytes.

    Hashes can be pinned per source file name to get readable ids.
    """

    def __init__(self, hashes: Dict[str, str] = None, fail_on: str = None):
        self.hashes = hashes or {}
        self.fail_on = fail_on
        self.copies: List[tuple] = []
        self.rebases: List[tuple] = []

    def _check(self, step: str):
        if self.fail_on == step:
            raise RuntimeError(f"{step} exploded")

    def compute_hash(self, path: Path) -> str:
        self._check("hash")
        return self.hashes.get(Path(path).name) or file_hash(path)

    def copy(self, source: Path, dest: Path, parent: Optional[Path] = None) -> Path:
        self._check("copy")
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)
        self.copies.append((source, dest, parent))
        return dest

    def info(self, path: Path) -> Dict[str, Any]:
        self._check("info")
        size = Path(path).stat().st_size
        return {
            "virtual-size": size * 10,
            "actual-size": size,
            "format": "qcow2",
            "format-specific": {"type": "qcow2", "data": {"compat": "1.1"}},
            "filename": str(path),
            "dirty-flag": False,
        }

    def rebase(self, path: Path, parent: str) -> None:
        self._check("rebase")
        self.rebases.append((path, parent))


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backend():
    """Create a fake backend."""
    return FakeBackend()


@pytest.fixture
def repo_config(temp_dir):
    """Config for a local repository."""
    return RepositoryConfig(name="local", path=temp_dir / "repo")


@pytest.fixture
def repo(repo_config, backend):
    """Create a local repository."""
    return ImageRepository(repo_config, backend=backend)


@pytest.fixture
def sources(temp_dir):
    """Directory for source image files."""
    path = temp_dir / "sources"
    path.mkdir()
    return path


def create_image(directory: Path, name: str, content: str = None) -> Path:
    """Create a fake image file."""
    path = directory / name
    path.write_text(content if content is not None else f"disk contents of {name}")
    return path


def make_config(temp_dir: Path, **remotes: str) -> Config:
    """Config with a local 'main' repo, an 'extra' repo and the given remotes."""
    repos = {
        "main": RepositoryConfig(name="main", path=temp_dir / "main"),
        "extra": RepositoryConfig(name="extra", path=temp_dir / "extra"),
    }
    for name, url in remotes.items():
        repos[name] = RepositoryConfig(
            name=name, path=temp_dir / name, type="remote", url=url
        )
    return Config(repos=repos, default="main")
