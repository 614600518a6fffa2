# imgrepo/errors.py
"""Exceptions raised by the image repository index."""

from typing import List, Optional


class RepositoryError(Exception):
    """Base exception for all repository errors."""

    pass


class ImageNotFound(RepositoryError):
    """Raised when a name resolves to no image where one is required."""

    def __init__(self, name: str):
        super().__init__(f"Image not found: {name}")
        self.name = name


class ParentNotFound(RepositoryError):
    """Raised when an ingested image declares a parent that does not resolve."""

    def __init__(self, parent: str):
        super().__init__(f"Parent not found: {parent}")
        self.parent = parent


class TagTargetNotFound(RepositoryError):
    """Raised when a tag would point at an image that does not exist."""

    def __init__(self, tag: str, target: str):
        super().__init__(f"Cannot tag '{tag}': image not found: {target}")
        self.tag = tag
        self.target = target


class BrokenAncestryChain(RepositoryError):
    """Raised when an ancestry walk reaches a parent that does not resolve."""

    def __init__(self, image_id: str, parent: str, reason: str = "not found"):
        super().__init__(f"Parent {parent} of {image_id}: {reason}")
        self.image_id = image_id
        self.parent = parent


class AmbiguousReference(RepositoryError):
    """Raised when a hash prefix matches more than one image."""

    def __init__(self, name: str, candidates: List[str]):
        self.name = name
        self.candidates = sorted(candidates)
        shown = ", ".join(c[:12] for c in self.candidates)
        super().__init__(f"Ambiguous reference '{name}' matches: {shown}")


class IndexVersionMismatch(RepositoryError):
    """Raised when an index declares a schema version this code cannot read."""

    def __init__(self, found, expected: int):
        super().__init__(f"Unsupported index version {found!r} (expected {expected})")
        self.found = found
        self.expected = expected


class IndexFormatError(RepositoryError):
    """Raised when an index document is structurally invalid."""

    pass


class RemoteFetchFailed(RepositoryError):
    """Raised when a remote index cannot be retrieved or parsed."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url


class StorageIOFailure(RepositoryError):
    """Raised when reading or writing repository files fails."""

    def __init__(self, path, reason: Optional[str] = None):
        message = f"Storage I/O failed for {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.path = path


class BackendError(RepositoryError):
    """Raised when the image conversion tool fails."""

    pass


class RepositoryNotFound(RepositoryError):
    """Raised when a repository name is not configured."""

    def __init__(self, name: str):
        super().__init__(f"Repository not configured: {name}")
        self.name = name


class ConfigError(RepositoryError):
    """Raised when the configuration file is malformed."""

    pass
