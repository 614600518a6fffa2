# imgrepo/client.py
"""
Client for remote repositories.

A remote repository is a plain HTTP(S) directory serving index.yaml and
the image files next to it.

Usage:
    client = IndexClient()
    index = client.fetch_index("https://images.example.com/repo/")
"""

import logging
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request, urlopen

from .errors import IndexFormatError, RemoteFetchFailed
from .index import Index

logger = logging.getLogger(__name__)

INDEX_NAME = "index.yaml"


def _base(url: str) -> str:
    # urljoin drops the last path segment unless it ends with a slash
    return url if url.endswith("/") else url + "/"


def index_url(url: str) -> str:
    """URL of the index document of the repository at url."""
    return urljoin(_base(url), INDEX_NAME)


def image_url(url: str, image_id: str, extension: str = ".qcow2") -> str:
    """URL of an image file of the repository at url."""
    return urljoin(_base(url), f"{image_id}{extension}")


class IndexClient:
    """
    Retrieves index documents from remote repositories.

    Args:
        timeout: Request timeout in seconds (None blocks indefinitely)
    """

    def __init__(self, timeout: float = None):
        self.timeout = timeout

    def fetch_text(self, url: str) -> str:
        """Download url as text."""
        req = Request(url, method="GET")
        try:
            with urlopen(req, timeout=self.timeout) as response:
                return response.read().decode()
        except HTTPError as e:
            raise RemoteFetchFailed(url, f"HTTP {e.code}") from e
        except URLError as e:
            raise RemoteFetchFailed(url, str(e.reason)) from e
        except (OSError, UnicodeDecodeError) as e:
            raise RemoteFetchFailed(url, str(e)) from e

    def fetch_index(self, url: str) -> Index:
        """
        Download and parse the index of the repository at url.

        Raises:
            RemoteFetchFailed: network or parse failure
            IndexVersionMismatch: remote index has an unsupported version
        """
        location = index_url(url)
        logger.info(f"Fetching {location}")
        text = self.fetch_text(location)
        try:
            return Index.from_yaml(text)
        except IndexFormatError as e:
            raise RemoteFetchFailed(location, str(e)) from e
