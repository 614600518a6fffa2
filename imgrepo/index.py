# imgrepo/index.py
"""
Repository index data structures.

An index is the complete persisted state of one repository:

    version: 0
    images:
      <sha1>:
        sha1: <sha1>
        parent: <sha1>          # optional
        virtual-size: ...
        actual-size: ...
        format: qcow2
        format-specific: {...}
        file-sha1: <sha1 of the ingested source file>
        creation-time: <posix seconds>
        description: ...        # optional
    tags:
      <name>: <sha1>

Record keys are kept hyphenated so indexes written by older tools and
served by remote repositories remain readable.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from .errors import IndexFormatError, IndexVersionMismatch

logger = logging.getLogger(__name__)

INDEX_VERSION = 0

# Backend-reported fields copied into the index on ingestion
INFO_FIELDS = ("virtual-size", "format", "actual-size", "format-specific")


@dataclass
class Artifact:
    """
    An image stored in a repository.

    Attributes:
        id: Content hash computed by the backend (primary key)
        parent_id: Id of the image this one is a delta against
        virtual_size: Guest-visible disk size in bytes
        actual_size: Bytes used on the host
        format: Storage format reported by the backend
        format_specific: Format-specific info reported by the backend
        source_file_hash: SHA-1 of the file that was ingested
        creation_time: Timestamp when added to the repository
        description: Free-form description
    """
    id: str
    parent_id: Optional[str] = None
    virtual_size: Optional[int] = None
    actual_size: Optional[int] = None
    format: Optional[str] = None
    format_specific: Optional[Dict[str, Any]] = None
    source_file_hash: Optional[str] = None
    creation_time: float = field(default_factory=time.time)
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"sha1": self.id}
        optional = {
            "parent": self.parent_id,
            "virtual-size": self.virtual_size,
            "actual-size": self.actual_size,
            "format": self.format,
            "format-specific": self.format_specific,
            "file-sha1": self.source_file_hash,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        data["creation-time"] = self.creation_time
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        parent = data.get("parent")
        return cls(
            id=str(data["sha1"]),
            parent_id=str(parent) if parent is not None else None,
            virtual_size=data.get("virtual-size"),
            actual_size=data.get("actual-size"),
            format=data.get("format"),
            format_specific=data.get("format-specific"),
            source_file_hash=data.get("file-sha1"),
            creation_time=_timestamp(data.get("creation-time")),
            description=data.get("description"),
        )


def _timestamp(value: Any) -> float:
    """Normalize a stored creation time to POSIX seconds."""
    if value is None:
        return 0.0
    if hasattr(value, "timestamp"):
        # YAML timestamps load as datetime
        return value.timestamp()
    return float(value)


@dataclass
class Index:
    """Images and tags of one repository."""
    images: Dict[str, Artifact] = field(default_factory=dict)
    tags: Dict[str, str] = field(default_factory=dict)
    version: int = INDEX_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "images": {k: v.to_dict() for k, v in self.images.items()},
            "tags": dict(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Index":
        """
        Build an index from a parsed document.

        Raises:
            IndexVersionMismatch: version is missing or unsupported
            IndexFormatError: document structure is invalid
        """
        if not isinstance(data, dict):
            raise IndexFormatError("Index document is not a mapping")

        version = data.get("version")
        if type(version) is not int or version != INDEX_VERSION:
            raise IndexVersionMismatch(version, INDEX_VERSION)

        images_data = data.get("images") or {}
        tags_data = data.get("tags") or {}
        if not isinstance(images_data, dict) or not isinstance(tags_data, dict):
            raise IndexFormatError("'images' and 'tags' must be mappings")

        images = {}
        for key, record in images_data.items():
            key = str(key)
            if not isinstance(record, dict):
                raise IndexFormatError(f"Image record {key} is not a mapping")
            record = dict(record)
            record["sha1"] = str(record.get("sha1", key))
            if record["sha1"] != key:
                raise IndexFormatError(
                    f"Image key {key} does not match its id {record['sha1']}"
                )
            images[key] = Artifact.from_dict(record)

        tags = {}
        for tag, target in tags_data.items():
            if target is None:
                logger.warning(f"Dropping tag '{tag}' with no target")
                continue
            tags[str(tag)] = str(target)
            if tags[str(tag)] not in images:
                logger.warning(f"Tag '{tag}' points at unknown image {target}")

        return cls(images=images, tags=tags, version=version)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> "Index":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise IndexFormatError(f"Invalid index YAML: {e}") from e
        return cls.from_dict(data)
