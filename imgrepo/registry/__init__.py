# imgrepo/registry/__init__.py
"""
Multi-repository registry.

The registry is the entry point for working with images across all
configured repositories. Names may be qualified with a repository name;
unqualified names refer to the default repository.

Example:
    registry = MultiRepoRegistry(Config.load())
    registry.get("upstream:centos7")

    for listing in registry.list_all():
        print(listing.name, listing.parent)
"""

from .registry import ArtifactListing, MultiRepoRegistry, parse_name

__all__ = ["ArtifactListing", "MultiRepoRegistry", "parse_name"]
