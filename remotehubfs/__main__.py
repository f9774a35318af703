#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# based on https://github.com/higlass/simple-httpfs

import argparse
import asyncio
import getpass
import logging
import os.path as op
import sys

from . import (
    CredentialProvider,
    GitHubApi,
    LanguageClient,
    RevisionTracker,
    SearchProvider,
    Settings,
    create_provider,
)
from .uris import RepositoryId, compose, decompose, parse_repository

# one of these replaces the mount
QUERY_OPTIONS = (
    "search_repositories",
    "files",
    "search_code",
    "symbols",
    "definition",
    "references",
    "hover",
)

# queries which run against the repositories given on the command line
REPOSITORY_QUERIES = ("files", "search_code", "symbols")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="mount github repositories read only, without cloning them",
        prog="remotehubfs",
    )

    parser.add_argument("mountpoint", nargs="?")
    parser.add_argument("repositories", nargs="*", metavar="repository", help="owner/repo or https://github.com/owner/repo")

    parser.add_argument(
        "-f",
        "--foreground",
        action="store_true",
        default=False,
        help="Run in the foreground",
    )

    parser.add_argument(
        "--allow-other",
        action="store_true",
        default=False,
        help="Allow other users to access this fuse",
    )

    queries = parser.add_argument_group(
        "queries", "run one query instead of mounting, positional arguments are all repositories"
    )
    queries.add_argument("--search-repositories", default=None, type=str, metavar="QUERY",
                         help="list repositories matching QUERY")
    queries.add_argument("--files", default=None, type=str, metavar="PATTERN",
                         help="list files of the repositories matching a glob or substring")
    queries.add_argument("--search-code", default=None, type=str, metavar="QUERY",
                         help="search the content of the repositories")
    queries.add_argument("--symbols", default=None, type=str, metavar="QUERY",
                         help="list symbols of the repositories matching QUERY")
    queries.add_argument("--definition", default=None, type=str, metavar="FILE:LINE:COL",
                         help="where the symbol at owner/repo/path:line:column is defined")
    queries.add_argument("--references", default=None, type=str, metavar="FILE:LINE:COL",
                         help="references of the symbol at owner/repo/path:line:column")
    queries.add_argument("--hover", default=None, type=str, metavar="FILE:LINE:COL",
                         help="documentation of the symbol at owner/repo/path:line:column")

    parser.add_argument("--authority", default=None, type=str)

    parser.add_argument("--token-file", default=None, type=str)

    parser.add_argument("--timeout", default=None, type=float)

    parser.add_argument("--lru-capacity", default=None, type=int)

    parser.add_argument("--object-cache-capacity", default=None, type=int)

    parser.add_argument("--disk-cache-size", default=None, type=int)

    parser.add_argument("-l", "--logfile", default=None, type=str)

    parser.add_argument("--debug", action="store_true", default=False)

    args = vars(parser.parse_args(argv))

    query = [key for key in QUERY_OPTIONS if args[key] is not None]
    if len(query) > 1:
        parser.error("only one query at a time")
    if query:
        if args["mountpoint"]:
            args["repositories"] = [args["mountpoint"]] + args["repositories"]
        args["mountpoint"] = None
        args["query"] = query[0]
        if query[0] in REPOSITORY_QUERIES and not args["repositories"]:
            parser.error("at least one repository is required")
    else:
        args["query"] = None
        if not args["mountpoint"] or not args["repositories"]:
            parser.error("mountpoint and at least one repository are required")

    return args


def setup_logging(args):
    logging.basicConfig(level=logging.DEBUG if args["debug"] else logging.INFO)
    logger = logging.getLogger("remotehubfs")

    if args["logfile"]:
        hdlr = logging.FileHandler(args["logfile"])
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(module)s: %(message)s"
        )
        hdlr.setFormatter(formatter)
        logger.addHandler(hdlr)

    return logger


def ensure_token(credentials):
    """Ask for a personal access token when none is configured."""
    if credentials.has_credential():
        return True
    if not sys.stdin.isatty():
        return False
    token = getpass.getpass("Enter a GitHub personal access token: ")
    if not token:
        return False
    credentials.set_token(token)
    return True


def parse_roots(texts, authority):
    roots = []
    for text in texts:
        repository = parse_repository(text, authority)
        if repository is None:
            print(f"not a repository: {text}", file=sys.stderr)
            sys.exit(1)
        roots.append(repository)
    return roots


def parse_position(text, authority, scheme):
    """
    owner/repo/path:line:column, with line and column counted from 1, to an
    identifier and a zero based position. None when text is not one.
    """
    parts = text.rsplit(":", 2)
    if len(parts) != 3 or not parts[1].isdigit() or not parts[2].isdigit():
        return None
    segments = [s for s in parts[0].split("/") if s]
    if len(segments) < 3 or int(parts[1]) < 1 or int(parts[2]) < 1:
        return None
    identifier = compose(RepositoryId(authority, segments[0], segments[1]), segments[2:], scheme)
    return identifier, int(parts[1]) - 1, int(parts[2]) - 1


def display_path(identifier):
    object_path = decompose(identifier)
    return "/".join([object_path.repository.full_name] + list(object_path.segments))


def display_location(location):
    return f"{display_path(location.identifier)}:{location.range.start_line + 1}:{location.range.start_character + 1}"


def match_lines(match):
    lines = match.preview.split("\n")
    if not match.matches:
        return lines[:1]
    return [lines[r.start_line] for r in match.matches if r.start_line < len(lines)]


async def run_query(settings, credentials, args, logger):
    query = args["query"]
    value = args[query]
    api = GitHubApi(credentials, settings, logger=logger)
    revisions = RevisionTracker(api, logger=logger)
    roots = [compose(r, scheme=settings.scheme) for r in parse_roots(args["repositories"], settings.authority)]

    try:
        if query == "search_repositories":
            for repo in await api.search_repositories(value):
                print(f"{repo.name_with_owner}\t{repo.url}\t{repo.description or ''}")
            return 0

        if query == "files":
            search = SearchProvider(api, revisions, logger=logger)
            for root in roots:
                for identifier in await search.file_search(root, value):
                    print(display_path(identifier))
            return 0

        if query == "search_code":
            search = SearchProvider(api, revisions, logger=logger)
            complete = await search.text_search(value, roots)
            for match in complete.matches:
                for line in match_lines(match):
                    print(f"{display_path(match.identifier)}\t{line.strip()}")
            if complete.limit_hit:
                print("results are incomplete", file=sys.stderr)
            return 0

        client = LanguageClient(revisions, settings, logger=logger)

        if query == "symbols":
            for root in roots:
                for symbol in await client.workspace_symbols(value, root) or ():
                    print(f"{symbol.name}\t{display_location(symbol.location)}")
            return 0

        position = parse_position(value, settings.authority, settings.scheme)
        if position is None:
            print(f"not a position, expected owner/repo/path:line:column: {value}", file=sys.stderr)
            return 1

        if query == "hover":
            hover = await client.hover(*position)
            if hover is not None:
                print(hover.contents)
            return 0

        if query == "definition":
            locations = await client.definition(*position)
        else:
            locations = await client.references(*position)
        for location in locations or ():
            print(display_location(location))
        return 0
    finally:
        api.dispose()


def mount(settings, credentials, args, logger):
    # fusepy loads libfuse on import
    from fuse import FUSE

    from .fuse_ops import EventLoopThread, RemoteHubFs

    roots = parse_roots(args["repositories"], settings.authority)
    provider = create_provider(settings, credentials, logger=logger)
    # started by RemoteHubFs.init, in the process fuse leaves running
    loop_thread = EventLoopThread()

    start_msg = """
remotehubfs.main
  mountpoint {mountpoint}
  repositories {repositories}
""".format(
        mountpoint=args["mountpoint"],
        repositories=" ".join(r.full_name for r in roots),
    )
    print(start_msg, file=sys.stderr)

    try:
        FUSE(
            RemoteHubFs(
                provider,
                roots,
                loop_thread,
                scheme=settings.scheme,
                lru_capacity=settings.lru_capacity,
                disk_cache_size=settings.disk_cache_size,
                credentials=credentials,
                token_poll_interval=settings.token_poll_interval,
                logger=logger,
            ),
            args["mountpoint"],
            foreground=args["foreground"],
            allow_other=args["allow_other"],
            ro=True,
            nothreads=False,
        )
    finally:
        loop_thread.stop()
        provider.api.dispose()
        provider.fetcher.dispose()


def main(argv=None):
    args = parse_args(argv)
    logger = setup_logging(args)
    settings = Settings.from_args(args)
    credentials = CredentialProvider(token_file=settings.token_file, logger=logger)

    if not ensure_token(credentials):
        print("a GitHub personal access token is required (REMOTEHUB_TOKEN, GITHUB_TOKEN or --token-file)", file=sys.stderr)
        sys.exit(1)

    if args["query"]:
        status = asyncio.run(run_query(settings, credentials, args, logger))
        if status:
            sys.exit(status)
        return

    if not op.isdir(args["mountpoint"]):
        print(
            "Mount point must be a directory: {}".format(args["mountpoint"]),
            file=sys.stderr,
        )
        sys.exit(1)

    mount(settings, credentials, args, logger)


if __name__ == "__main__":
    main()
