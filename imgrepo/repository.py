# imgrepo/repository.py
"""
A single image repository.

Structure:
    repo_dir/
        index.yaml        # Images and tags (see imgrepo.index)
        index.lock        # Advisory lock for writers
        <sha1>.qcow2      # One file per image, possibly backed by its parent

Images are content-addressed by a hash the backend computes over the
disk contents. They can be referenced by any unique prefix of that hash
or by a tag.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .backend import Backend, QemuImgBackend, file_hash
from .client import IndexClient, image_url
from .config import RepositoryConfig
from .errors import (
    AmbiguousReference,
    BrokenAncestryChain,
    ImageNotFound,
    ParentNotFound,
    StorageIOFailure,
    TagTargetNotFound,
)
from .index import INFO_FIELDS, Artifact, Index
from .storage import atomic_write, file_lock, read_text

logger = logging.getLogger(__name__)

# Shortest hash prefix shown for untagged images
SHORT_ID_LENGTH = 8


class ImageRepository:
    """
    Index and storage of one repository.

    Every persisted change is made inside transaction(), which locks the
    repository, reloads the index from disk, applies the change and
    replaces the index file atomically. For remote repositories the
    local index is only a cache of the one served at the repository url.
    """

    def __init__(
        self,
        conf: RepositoryConfig,
        backend: Backend = None,
        client: IndexClient = None,
    ):
        self.conf = conf
        self.path = Path(conf.path).expanduser()
        self.backend = backend or QemuImgBackend()
        self.client = client or IndexClient()
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOFailure(self.path, str(e)) from e
        self._index = Index()
        self.read_index()

    @property
    def name(self) -> str:
        return self.conf.name

    @property
    def kind(self) -> str:
        return self.conf.type

    @property
    def url(self) -> Optional[str]:
        return self.conf.url

    @property
    def index(self) -> Index:
        return self._index

    @property
    def images(self) -> Dict[str, Artifact]:
        return self._index.images

    @property
    def tags(self) -> Dict[str, str]:
        return self._index.tags

    def metadata_path(self, name: str) -> Path:
        return self.path / f"{name}.yaml"

    def index_path(self) -> Path:
        return self.metadata_path("index")

    def lock_path(self) -> Path:
        return self.path / "index.lock"

    def image_path(self, image_id: str) -> Path:
        return self.path / f"{image_id}.qcow2"

    def image_url(self, image_id: str) -> Optional[str]:
        """Remote location of an image file, None for local repositories."""
        if not self.conf.is_remote:
            return None
        return image_url(self.url, image_id)

    # Persistence

    def read_index(self, text: str = None) -> Index:
        """
        Load the index from text, or from disk when text is None.

        A missing index file yields an empty index.
        """
        if text is None:
            text = read_text(self.index_path())
        self._index = Index() if text is None else Index.from_yaml(text)
        return self._index

    def _persist(self):
        atomic_write(self.index_path(), self._index.to_yaml())
        logger.debug(f"Wrote {self.index_path()} ({len(self.images)} images)")

    def write_index(self):
        """Persist the in-memory index, replacing what is on disk."""
        with file_lock(self.lock_path()):
            self._persist()

    @contextmanager
    def transaction(self) -> Iterator[Index]:
        """
        Lock, reload, mutate, persist.

        Changes made to the yielded index are written when the block
        exits normally. If the block raises, the index is reloaded from
        disk and nothing is written.
        """
        with file_lock(self.lock_path()):
            self.read_index()
            try:
                yield self._index
            except BaseException:
                self.read_index()
                raise
            self._persist()

    # Lookup

    def find(self, name: str) -> Optional[str]:
        """
        Resolve a hash prefix or tag to an image id.

        Hash prefixes take precedence over tags. An exact id always wins.

        Raises:
            AmbiguousReference: name is a prefix of more than one id
        """
        if not name:
            return None

        if name in self.images:
            return name

        matches = [image_id for image_id in self.images if image_id.startswith(name)]
        if len(matches) > 1:
            raise AmbiguousReference(name, matches)
        if matches:
            return matches[0]

        return self.tags.get(name)

    def get(self, name: str) -> Optional[Artifact]:
        """Get an image by hash prefix or tag."""
        image_id = self.find(name)
        if image_id is None:
            return None
        return self.images.get(image_id)

    def short_name(self, image_id: str) -> str:
        """
        Shortest display form of an image.

        The first tag (alphabetically) pointing at the image, otherwise
        the shortest prefix of at least SHORT_ID_LENGTH characters that
        resolves to it.
        """
        tags = sorted(tag for tag, target in self.tags.items() if target == image_id)
        if tags:
            return tags[0]

        if image_id not in self.images:
            raise ImageNotFound(image_id)

        for length in range(min(SHORT_ID_LENGTH, len(image_id)), len(image_id)):
            prefix = image_id[:length]
            if sum(1 for other in self.images if other.startswith(prefix)) == 1:
                return prefix
        return image_id

    def ancestors(self, name: str) -> List[str]:
        """
        Ids of an image and all its parents, nearest first.

        Raises:
            ImageNotFound: name does not resolve
            BrokenAncestryChain: a parent does not resolve or the chain loops
        """
        image = self.get(name)
        if image is None:
            raise ImageNotFound(name)

        chain = [image.id]
        while image.parent_id:
            try:
                parent = self.get(image.parent_id)
            except AmbiguousReference as e:
                raise BrokenAncestryChain(image.id, image.parent_id, "ambiguous") from e
            if parent is None:
                raise BrokenAncestryChain(image.id, image.parent_id)
            if parent.id in chain:
                raise BrokenAncestryChain(image.id, image.parent_id, "cycle")
            chain.append(parent.id)
            image = parent

        return chain

    # Mutation

    def add(self, image_id: str, data: Dict[str, Any]) -> Artifact:
        """
        Record an image in the in-memory index.

        Stamps the creation time and id. Not persisted until
        write_index() or the enclosing transaction completes.
        """
        data = dict(data)
        data["sha1"] = image_id
        data["creation-time"] = time.time()
        artifact = Artifact.from_dict(data)
        self.images[image_id] = artifact
        return artifact

    def add_image(self, file: Path | str, data: Dict[str, Any] = None) -> str:
        """
        Ingest an image file.

        Args:
            file: Image to add
            data: Index record fields; "parent" names the image this one
                is stored as a delta against

        Returns:
            Id of the stored image

        Raises:
            ParentNotFound: data["parent"] does not resolve
            StorageIOFailure: file does not exist
        """
        data = dict(data or {})
        parent = None
        if data.get("parent"):
            parent = self.get(data["parent"])
            if parent is None:
                raise ParentNotFound(data["parent"])

        file = Path(file)
        if not file.is_file():
            raise StorageIOFailure(file, "image file not found")

        logger.info(f"Calculating hash of {file} (it will take some time)")
        image_id = self.backend.compute_hash(file).strip()
        logger.info(f"Image hash: {image_id}")

        dest = self.image_path(image_id)
        existed = dest.exists()
        parent_path = self.image_path(parent.id).resolve() if parent else None

        logger.info(f"Copying {file} to {dest}")
        self.backend.copy(file, dest, parent=parent_path)

        try:
            info = self.backend.info(dest)
            data.update({k: v for k, v in info.items() if k in INFO_FIELDS})

            try:
                data["file-sha1"] = file_hash(file)
            except OSError as e:
                raise StorageIOFailure(file, str(e)) from e

            if parent:
                self.backend.rebase(dest, self.image_path(parent.id).name)
                data["parent"] = parent.id

            with self.transaction() as index:
                if parent and parent.id not in index.images:
                    raise ParentNotFound(parent.id)
                previous = index.images.get(image_id)
                artifact = self.add(image_id, data)
                if previous is not None:
                    artifact.creation_time = previous.creation_time
        except Exception:
            if not existed:
                logger.warning(f"Ingestion of {file} failed, {dest} is not in the index")
            raise

        logger.info(f"Added {image_id} to {self.name}")
        return image_id

    def add_tag(self, tag: str, name: str) -> str:
        """
        Point tag at the image name resolves to.

        Returns:
            The tagged image id

        Raises:
            TagTargetNotFound: name does not resolve to an image
        """
        with self.transaction() as index:
            image_id = self.find(name)
            if image_id is None or image_id not in index.images:
                raise TagTargetNotFound(tag, name)
            index.tags[tag] = image_id

        logger.info(f"Tagged {image_id} as '{tag}' in {self.name}")
        return image_id

    def fetch(self) -> bool:
        """
        Refresh the local copy of a remote repository's index.

        The remote index replaces the local one wholesale. Nothing is
        written if retrieval or parsing fails.

        Returns:
            True if the index was refreshed, False for local repositories
        """
        if not self.conf.is_remote:
            logger.debug(f"{self.name} is local, nothing to fetch")
            return False

        index = self.client.fetch_index(self.url)

        with file_lock(self.lock_path()):
            atomic_write(self.index_path(), index.to_yaml())
            self._index = index

        logger.info(f"Fetched {len(index.images)} images, {len(index.tags)} tags into {self.name}")
        return True

    def list(self) -> List[Artifact]:
        """List all images."""
        return list(self.images.values())

    def __contains__(self, name: str) -> bool:
        try:
            return self.get(name) is not None
        except AmbiguousReference:
            return True

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self):
        return iter(self.images.values())
