# imgrepo - Content-addressed repository of layered disk images
#
# Images are identified by a hash of their content and may be stored as
# deltas against a parent image. Each repository keeps an index of its
# images and tags; remote repositories keep a local cache of the index
# served at their url.
#
# Core concepts:
# - Artifact: An image record in a repository index
# - ImageRepository: One repository's index and storage
# - MultiRepoRegistry: All configured repositories, addressed as "repo:name"
# - Backend: Computes hashes, copies, inspects and rebases image files

from .backend import Backend, QemuImgBackend
from .client import IndexClient
from .config import Config, RepositoryConfig
from .errors import (
    AmbiguousReference,
    BackendError,
    BrokenAncestryChain,
    ConfigError,
    ImageNotFound,
    IndexFormatError,
    IndexVersionMismatch,
    ParentNotFound,
    RemoteFetchFailed,
    RepositoryError,
    RepositoryNotFound,
    StorageIOFailure,
    TagTargetNotFound,
)
from .index import Artifact, Index
from .registry import ArtifactListing, MultiRepoRegistry, parse_name
from .repository import ImageRepository

__all__ = [
    # Core
    "Artifact",
    "Index",
    "ImageRepository",
    "MultiRepoRegistry",
    "ArtifactListing",
    "parse_name",
    "Config",
    "RepositoryConfig",
    "Backend",
    "QemuImgBackend",
    "IndexClient",
    # Errors
    "RepositoryError",
    "ImageNotFound",
    "ParentNotFound",
    "TagTargetNotFound",
    "BrokenAncestryChain",
    "AmbiguousReference",
    "IndexVersionMismatch",
    "IndexFormatError",
    "RemoteFetchFailed",
    "StorageIOFailure",
    "BackendError",
    "RepositoryNotFound",
    "ConfigError",
]

__version__ = "0.1.0"
