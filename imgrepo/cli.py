#!/usr/bin/env python3
"""
imgrepo CLI

Command-line interface over all configured repositories:
  imgrepo list - List images in every repository
  imgrepo show - Show one image record
  imgrepo add - Add an image file to a repository
  imgrepo tag - Tag an image
  imgrepo ancestors - Show an image and its parents
  imgrepo fetch - Refresh remote repository indexes

Usage:
  imgrepo list
  imgrepo show <name>
  imgrepo add <file> [--repo <repo>] [--parent <name>] [--description <text>] [--tag <tag>]
  imgrepo tag <tag> <name>
  imgrepo ancestors <name>
  imgrepo fetch [<repo>]

Names are hash prefixes or tags, optionally qualified as <repo>:<name>.
"""

import argparse
import logging
import sys

import yaml

from .config import Config
from .errors import ImageNotFound, RepositoryError
from .registry import MultiRepoRegistry, parse_name


def _size(value) -> str:
    if value is None:
        return "-"
    size = float(value)
    for unit in ("B", "K", "M", "G"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


def cmd_list(registry: MultiRepoRegistry, args):
    """List all images."""
    listings = registry.list_all()
    if not listings:
        print("No images")
        return

    width = max(len(item.name) for item in listings)
    print(f"{'NAME':<{width}}  {'SIZE':>8}  {'PARENT':<{width}}  DESCRIPTION")
    for item in listings:
        print(
            f"{item.name:<{width}}  {_size(item.size):>8}  "
            f"{item.parent or '-':<{width}}  {item.description or ''}"
        )


def cmd_show(registry: MultiRepoRegistry, args):
    """Show an image record."""
    image = registry.get(args.name)
    if image is None:
        raise ImageNotFound(args.name)
    print(yaml.safe_dump(image.to_dict(), default_flow_style=False, sort_keys=False), end="")


def cmd_add(registry: MultiRepoRegistry, args):
    """Add an image file."""
    data = {}
    if args.parent:
        parent_repo, parent_name = parse_name(args.parent)
        if parent_repo and parent_repo != registry.repo(args.repo).name:
            raise RepositoryError("Parent must be in the same repository")
        data["parent"] = parent_name
    if args.description:
        data["description"] = args.description

    image_id = registry.add_image(args.file, data, repo=args.repo)
    repo_name = registry.repo(args.repo).name
    print(f"{repo_name}:{image_id}")

    if args.tag:
        registry.add_tag(f"{repo_name}:{args.tag}", f"{repo_name}:{image_id}")
        print(f"Tagged as {repo_name}:{args.tag}")


def cmd_tag(registry: MultiRepoRegistry, args):
    """Tag an image."""
    image_id = registry.add_tag(args.tag, args.name)
    print(f"{args.tag} -> {image_id}")


def cmd_ancestors(registry: MultiRepoRegistry, args):
    """Show an image and its parents."""
    img_repo, _ = parse_name(args.name)
    for image_id in registry.ancestors(args.name):
        print(registry.short_name(image_id, img_repo))


def cmd_fetch(registry: MultiRepoRegistry, args):
    """Refresh remote indexes."""
    if args.repo:
        fetched = [args.repo] if registry.fetch(args.repo) else []
    else:
        fetched = registry.fetch_all()

    if not fetched:
        print("No remote repositories to fetch")
    for name in fetched:
        print(f"Fetched {name} ({len(registry.repo(name))} images)")


COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "add": cmd_add,
    "tag": cmd_tag,
    "ancestors": cmd_ancestors,
    "fetch": cmd_fetch,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imgrepo",
        description="Content-addressed disk image repositories",
    )
    parser.add_argument("-c", "--config", help="Config file (default: ~/.imgrepo/config.yaml)")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More output (repeat for debug)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("list", help="List images in all repositories")

    show_parser = subparsers.add_parser("show", help="Show an image record")
    show_parser.add_argument("name", help="Image: [repo:]prefix-or-tag")

    add_parser = subparsers.add_parser("add", help="Add an image file")
    add_parser.add_argument("file", help="Image file")
    add_parser.add_argument("-r", "--repo", help="Repository (default: configured default)")
    add_parser.add_argument("-p", "--parent", help="Parent image to store a delta against")
    add_parser.add_argument("-d", "--description", help="Image description")
    add_parser.add_argument("-t", "--tag", help="Tag the new image")

    tag_parser = subparsers.add_parser("tag", help="Tag an image")
    tag_parser.add_argument("tag", help="Tag: [repo:]name")
    tag_parser.add_argument("name", help="Image: [repo:]prefix-or-tag")

    ancestors_parser = subparsers.add_parser("ancestors", help="Show an image and its parents")
    ancestors_parser.add_argument("name", help="Image: [repo:]prefix-or-tag")

    fetch_parser = subparsers.add_parser("fetch", help="Refresh remote repository indexes")
    fetch_parser.add_argument("repo", nargs="?", help="Repository (default: all remote)")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        registry = MultiRepoRegistry(Config.load(args.config))
        COMMANDS[args.command](registry, args)
    except RepositoryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
