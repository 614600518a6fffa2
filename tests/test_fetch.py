# tests/test_fetch.py
"""Tests for remote index retrieval and cache refresh."""

import pytest

from conftest import FakeBackend
from imgrepo import repository as repository_module
from imgrepo.client import IndexClient, image_url, index_url
from imgrepo.config import RepositoryConfig
from imgrepo.errors import IndexVersionMismatch, RemoteFetchFailed, StorageIOFailure
from imgrepo.index import Artifact, Index
from imgrepo.repository import ImageRepository

REMOTE_INDEX = """\
version: 0
images:
  aaa111:
    sha1: aaa111
    actual-size: 100
    creation-time: 1500000000.0
  bbb222:
    sha1: bbb222
    parent: aaa111
    creation-time: 1500000100.0
tags:
  stable: bbb222
"""


@pytest.fixture
def served_dir(temp_dir):
    """Directory standing in for a remote repository."""
    path = temp_dir / "served"
    path.mkdir()
    (path / "index.yaml").write_text(REMOTE_INDEX)
    return path


@pytest.fixture
def remote_config(temp_dir, served_dir):
    """Config for a remote repository served from a file URL."""
    return RepositoryConfig(
        name="upstream",
        path=temp_dir / "cache",
        type="remote",
        url=served_dir.as_uri() + "/",
    )


@pytest.fixture
def remote(remote_config):
    """Create a remote repository."""
    return ImageRepository(remote_config, backend=FakeBackend())


class FailingClient(IndexClient):
    """Client whose every request fails."""

    def fetch_text(self, url: str) -> str:
        raise RemoteFetchFailed(url, "connection refused")


class TestUrls:
    """Test remote URL construction."""

    def test_index_url(self):
        """Test the index lives beside the images."""
        assert index_url("http://host/repo/") == "http://host/repo/index.yaml"

    def test_index_url_without_slash(self):
        """Test a base URL without trailing slash keeps its last segment."""
        assert index_url("http://host/repo") == "http://host/repo/index.yaml"

    def test_image_url(self):
        """Test image files are named by id."""
        assert image_url("http://host/repo/", "abc") == "http://host/repo/abc.qcow2"


class TestIndexClient:
    """Test IndexClient."""

    def test_fetch_index(self, served_dir):
        """Test fetching and parsing a served index."""
        index = IndexClient().fetch_index(served_dir.as_uri())
        assert set(index.images) == {"aaa111", "bbb222"}
        assert index.tags == {"stable": "bbb222"}

    def test_missing_index(self, temp_dir):
        """Test a missing resource fails."""
        with pytest.raises(RemoteFetchFailed):
            IndexClient().fetch_index((temp_dir / "nowhere").as_uri())

    def test_unparseable_index(self, served_dir):
        """Test a malformed document fails as a fetch failure."""
        (served_dir / "index.yaml").write_text("version: [0\n")
        with pytest.raises(RemoteFetchFailed):
            IndexClient().fetch_index(served_dir.as_uri())

    def test_unsupported_version(self, served_dir):
        """Test a newer remote schema is refused."""
        (served_dir / "index.yaml").write_text("version: 1\nimages: {}\ntags: {}\n")
        with pytest.raises(IndexVersionMismatch):
            IndexClient().fetch_index(served_dir.as_uri())


class TestFetch:
    """Test ImageRepository.fetch."""

    def test_local_is_noop(self, repo):
        """Test fetching a local repository changes nothing."""
        repo.add("aaa111", {})
        repo.write_index()
        before = repo.index_path().read_bytes()
        index_before = Index.from_yaml(before.decode())

        assert repo.fetch() is False
        assert repo.index_path().read_bytes() == before
        assert repo.index == index_before

    def test_fetch_replaces_cache(self, remote, remote_config):
        """Test fetch installs the remote index and persists it."""
        remote.add("ccc333", {})
        remote.write_index()

        assert remote.fetch() is True

        assert set(remote.images) == {"aaa111", "bbb222"}
        assert remote.find("stable") == "bbb222"
        assert remote.ancestors("stable") == ["bbb222", "aaa111"]

        reopened = ImageRepository(remote_config, backend=FakeBackend())
        assert reopened.index == remote.index

    def test_failed_fetch_keeps_cache(self, remote_config):
        """Test a network failure leaves the cached index byte for byte."""
        remote = ImageRepository(remote_config, backend=FakeBackend(), client=FailingClient())
        remote.add("ccc333", {})
        remote.write_index()
        before = remote.index_path().read_bytes()

        with pytest.raises(RemoteFetchFailed):
            remote.fetch()

        assert remote.index_path().read_bytes() == before
        assert list(remote.images) == ["ccc333"]

    def test_bad_remote_keeps_cache(self, remote, served_dir):
        """Test an unparseable remote index leaves the cache alone."""
        remote.fetch()
        before = remote.index_path().read_bytes()
        (served_dir / "index.yaml").write_text("images: nope\n")

        with pytest.raises((RemoteFetchFailed, IndexVersionMismatch)):
            remote.fetch()

        assert remote.index_path().read_bytes() == before
        assert remote.find("stable") == "bbb222"

    def test_failed_write_keeps_memory(self, remote, monkeypatch):
        """Test a failed cache write leaves the in-memory index as it was."""
        remote.add("ccc333", {})
        remote.write_index()
        before = remote.index_path().read_bytes()

        def failing_write(path, text):
            raise StorageIOFailure(path, "disk full")

        monkeypatch.setattr(repository_module, "atomic_write", failing_write)

        with pytest.raises(StorageIOFailure):
            remote.fetch()

        assert list(remote.images) == ["ccc333"]
        assert remote.find("stable") is None
        assert remote.index_path().read_bytes() == before

    def test_image_url(self, remote, served_dir):
        """Test remote repositories expose image locations."""
        assert remote.image_url("aaa111") == (served_dir / "aaa111.qcow2").as_uri()

    def test_fetched_records(self, remote):
        """Test fetched records parse fully."""
        remote.fetch()
        assert remote.get("aaa111") == Artifact(
            id="aaa111", actual_size=100, creation_time=1500000000.0
        )
