# imgrepo/config.py
"""
Repository configuration.

Example config.yaml:

    default: local
    repos:
      local:
        path: ~/images
      upstream:
        type: remote
        url: https://images.example.com/repo/
        path: ~/.imgrepo/upstream
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError, RepositoryNotFound

logger = logging.getLogger(__name__)

CONFIG_ENV = "IMGREPO_CONFIG"
HOME_DIR = Path("~/.imgrepo")
DEFAULT_REPO = "default"

LOCAL = "local"
REMOTE = "remote"


@dataclass
class RepositoryConfig:
    """Location of one repository."""
    name: str
    path: Path
    type: str = LOCAL
    url: Optional[str] = None

    @property
    def is_remote(self) -> bool:
        return self.type == REMOTE

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "RepositoryConfig":
        if not isinstance(data, dict):
            raise ConfigError(f"Repository '{name}' must be a mapping")

        repo_type = data.get("type", LOCAL)
        if repo_type not in (LOCAL, REMOTE):
            raise ConfigError(f"Repository '{name}' has unknown type '{repo_type}'")

        url = data.get("url")
        if repo_type == REMOTE and not url:
            raise ConfigError(f"Remote repository '{name}' needs a url")

        path = data.get("path")
        if path is None:
            if repo_type == LOCAL:
                raise ConfigError(f"Local repository '{name}' needs a path")
            path = HOME_DIR / name

        return cls(
            name=name,
            path=Path(path).expanduser(),
            type=repo_type,
            url=url,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type, "path": str(self.path)}
        if self.url:
            data["url"] = self.url
        return data


@dataclass
class Config:
    """Named repositories and the default one."""
    repos: Dict[str, RepositoryConfig] = field(default_factory=dict)
    default: str = DEFAULT_REPO

    @property
    def repo_names(self) -> List[str]:
        return list(self.repos)

    def repo(self, name: Optional[str] = None) -> RepositoryConfig:
        """Get a repository config by name (default when None)."""
        name = name or self.default
        try:
            return self.repos[name]
        except KeyError:
            raise RepositoryNotFound(name) from None

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        repos_data = data.get("repos") or {}
        if not isinstance(repos_data, dict):
            raise ConfigError("'repos' must be a mapping")

        repos = {
            str(name): RepositoryConfig.from_dict(str(name), repo_data)
            for name, repo_data in repos_data.items()
        }
        if not repos:
            raise ConfigError("No repositories configured")

        default = data.get("default")
        if default is None:
            default = DEFAULT_REPO if DEFAULT_REPO in repos else next(iter(repos))
        if default not in repos:
            raise ConfigError(f"Default repository '{default}' is not configured")

        return cls(repos=repos, default=default)

    @classmethod
    def builtin(cls) -> "Config":
        """Configuration used when no config file exists."""
        repo = RepositoryConfig(
            name=DEFAULT_REPO,
            path=(HOME_DIR / DEFAULT_REPO).expanduser(),
        )
        return cls(repos={DEFAULT_REPO: repo}, default=DEFAULT_REPO)

    @classmethod
    def load(cls, path: Path | str = None) -> "Config":
        """
        Load configuration.

        Args:
            path: Config file. Defaults to $IMGREPO_CONFIG, then
                ~/.imgrepo/config.yaml.

        Returns:
            The parsed Config, or the built-in one if the file is missing
        """
        if path is None:
            path = os.environ.get(CONFIG_ENV) or HOME_DIR / "config.yaml"
        path = Path(path).expanduser()

        if not path.exists():
            logger.debug(f"No config at {path}, using built-in defaults")
            return cls.builtin()

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config {path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e

        logger.debug(f"Loaded config from {path}")
        return cls.from_dict(data)
