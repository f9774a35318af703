import fnmatch
import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from .uris import decompose, join_path


@dataclass(frozen=True)
class Range:
    start_line: int
    start_character: int
    end_line: int
    end_character: int


# github does not report line numbers, matches are placed at the top of the file
TOP_OF_FILE = Range(0, 0, 0, 0)


@dataclass(frozen=True)
class SearchMatch:
    identifier: str
    preview: str
    ranges: Tuple[Range, ...]
    matches: Tuple[Range, ...]


@dataclass
class TextSearchComplete:
    matches: List[SearchMatch] = field(default_factory=list)
    limit_hit: bool = False


def fragment_range(fragment, start, end):
    """Line and column range of fragment[start:end] within the fragment."""
    line = 0
    start_character = 0
    end_character = 0
    for i in range(min(end, len(fragment))):
        if i == start:
            start_character = end_character
        if fragment[i] == "\n":
            line += 1
            end_character = 0
        else:
            end_character += 1
    return Range(line, start_character, line, end_character)


def is_cancelled(cancellation):
    return cancellation is not None and cancellation.is_set()


class SearchProvider:
    """
    File and text search over workspace roots.

    A cancellation signal (anything with is_set()) is only looked at between
    the queries issued for different roots, never in the middle of one.
    """

    def __init__(self, api, revisions, logger=None):
        self.api = api
        self.revisions = revisions
        self.logger = logger or logging.getLogger(__name__)

    async def file_index(self, root, cancellation=None):
        repository = decompose(root).repository
        revision = await self.revisions.ensure_pinned(root, repository)
        if is_cancelled(cancellation):
            return []
        paths = await self.api.fetch_tree_paths(repository, revision)
        if paths is None or is_cancelled(cancellation):
            return []
        return [join_path(root, p) for p in paths]

    async def file_search(self, root, pattern, max_results=None, cancellation=None):
        index = await self.file_index(root, cancellation)
        if not pattern:
            return index[:max_results] if max_results is not None else index

        pattern = pattern.lower()
        glob = any(c in pattern for c in "*?[")
        prefix = len(root.rstrip("/")) + 1
        results = []
        for identifier in index:
            path = identifier[prefix:].lower()
            if glob:
                matched = fnmatch.fnmatch(path, pattern) or fnmatch.fnmatch(path.rsplit("/", 1)[-1], pattern)
            else:
                matched = pattern in path
            if matched:
                results.append(identifier)
                if max_results is not None and len(results) >= max_results:
                    break
        return results

    async def text_search(self, query, roots, max_results=None, cancellation=None):
        complete = TextSearchComplete()
        if not query:
            return complete

        for root in roots:
            if is_cancelled(cancellation):
                complete.limit_hit = True
                return complete

            items = await self.api.search_code(query, decompose(root).repository)
            if items is None:
                complete.limit_hit = True
                continue

            for item in items:
                identifier = join_path(root, item["path"])
                for text_match in item.get("text_matches") or ():
                    if max_results is not None and len(complete.matches) >= max_results:
                        complete.limit_hit = True
                        return complete
                    fragment = text_match.get("fragment", "")
                    matches = tuple(
                        fragment_range(fragment, *m["indices"]) for m in text_match.get("matches") or ()
                    )
                    complete.matches.append(
                        SearchMatch(
                            identifier=identifier,
                            preview=fragment,
                            ranges=tuple(TOP_OF_FILE for _ in matches),
                            matches=matches,
                        )
                    )
        return complete
