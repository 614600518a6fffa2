# imgrepo/registry/registry.py
"""
Registry of all configured repositories.

Repositories are constructed on first use and kept for the lifetime of
the registry. Qualified names have the form "repo:name", where name is
a hash prefix or tag within that repository.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..backend import Backend
from ..client import IndexClient
from ..config import Config
from ..errors import AmbiguousReference, ImageNotFound, TagTargetNotFound
from ..index import Artifact
from ..repository import ImageRepository

logger = logging.getLogger(__name__)


def parse_name(name: str) -> Tuple[Optional[str], str]:
    """
    Split a qualified name into (repository, name).

    Splits on the first colon. Unqualified names yield (None, name).
    """
    if ":" in name:
        repo, local = name.split(":", 1)
        return repo, local
    return None, name


@dataclass
class ArtifactListing:
    """One image in a cross-repository listing."""
    repo: str
    id: str
    name: str
    size: Optional[int]
    parent: Optional[str]
    description: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo": self.repo,
            "sha1": self.id,
            "name": self.name,
            "size": self.size,
            "parent": self.parent,
            "description": self.description,
        }


class MultiRepoRegistry:
    """
    Named collection of repositories.

    Args:
        config: Repository configuration (loaded from disk if None)
        backend: Conversion backend shared by all repositories
        client: Index client shared by all remote repositories
    """

    def __init__(
        self,
        config: Config = None,
        backend: Backend = None,
        client: IndexClient = None,
    ):
        self.config = config or Config.load()
        self.backend = backend
        self.client = client
        self._repos: Dict[str, ImageRepository] = {}

    @property
    def default_repo(self) -> str:
        return self.config.default

    @property
    def repo_names(self) -> List[str]:
        return self.config.repo_names

    def repo(self, name: str = None) -> ImageRepository:
        """
        Get a repository by name (default when None).

        Raises:
            RepositoryNotFound: name is not configured
        """
        conf = self.config.repo(name)
        if conf.name not in self._repos:
            logger.debug(f"Opening repository {conf.name} at {conf.path}")
            self._repos[conf.name] = ImageRepository(
                conf, backend=self.backend, client=self.client
            )
        return self._repos[conf.name]

    def find(self, name: str, repo: str = None) -> Tuple[str, Optional[str]]:
        """
        Resolve a qualified name.

        Args:
            name: "repo:name" or a name in the repo argument's repository
            repo: Repository for unqualified names (default when None)

        Returns:
            (repository name, image id or None)
        """
        img_repo, img_name = parse_name(name)
        repository = self.repo(img_repo or repo)
        return repository.name, repository.find(img_name)

    def get(self, name: str, repo: str = None) -> Optional[Artifact]:
        """Get an image by qualified name."""
        img_repo, img_name = parse_name(name)
        return self.repo(img_repo or repo).get(img_name)

    def short_name(self, name: Optional[str], repo: str = None) -> Optional[str]:
        """
        Qualified display name of an image.

        Args:
            name: Qualified or unqualified image name; None means no image
            repo: Repository for unqualified names (default when None)

        Returns:
            "repo:tag" or "repo:prefix", None if name is None
        """
        if name is None:
            return None

        img_repo, img_name = parse_name(name)
        repository = self.repo(img_repo or repo)

        try:
            image_id = repository.find(img_name)
        except AmbiguousReference:
            image_id = None
        if image_id is None or image_id not in repository.images:
            logger.warning(f"Cannot resolve {img_name} in {repository.name}")
            return f"{repository.name}:{img_name}"

        return f"{repository.name}:{repository.short_name(image_id)}"

    def ancestors(self, name: str, repo: str = None) -> List[str]:
        img_repo, img_name = parse_name(name)
        return self.repo(img_repo or repo).ancestors(img_name)

    def add_image(self, file, data: Dict[str, Any] = None, repo: str = None) -> str:
        """Ingest an image into a repository, returning its id."""
        return self.repo(repo).add_image(file, data)

    def add_tag(self, tag: str, name: str) -> str:
        """
        Tag an image.

        Both names may be qualified. The tag lives in the image's
        repository; tagging across repositories is rejected.
        """
        tag_repo, tag_name = parse_name(tag)
        img_repo, img_name = parse_name(name)
        repository = self.repo(tag_repo or img_repo)
        if img_repo and img_repo != repository.name:
            raise TagTargetNotFound(tag, name)
        return repository.add_tag(tag_name, img_name)

    def fetch(self, repo: str = None) -> bool:
        return self.repo(repo).fetch()

    def fetch_all(self) -> List[str]:
        """Refresh every remote repository, returning the names fetched."""
        return [name for name in self.repo_names if self.repo(name).fetch()]

    def list_all(self) -> List[ArtifactListing]:
        """
        Flattened listing of every image in every repository.

        Repositories appear in configuration order, images in index order.
        """
        listings = []
        for repo_name in self.repo_names:
            repository = self.repo(repo_name)
            for image in repository:
                listings.append(ArtifactListing(
                    repo=repo_name,
                    id=image.id,
                    name=f"{repo_name}:{repository.short_name(image.id)}",
                    size=image.actual_size,
                    parent=self.short_name(image.parent_id, repo_name),
                    description=image.description,
                ))
        return listings
