import asyncio
import enum
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import requests

from .config import Settings
from .credentials import MissingCredential
from .session import build_session
from .uris import HEAD, revision_expression
from .util import compact_query, pretty_json, sha1

SEARCH_PAGE_SIZE = 25

url_prefix_regex = re.compile(r"^https?://(?:www\.)?github\.com/", re.IGNORECASE)

FS_QUERY = """query fs($owner: String!, $repo: String!, $path: String) {
    repository(owner: $owner, name: $repo) {
        object(expression: $path) {
            %s
        }
    }
}"""

REPO_QUERY = """query repo($owner: String!, $repo: String!) {
    repository(owner: $owner, name: $repo) {
        defaultBranchRef {
            target {
                oid
            }
        }
    }
}"""

REPOS_QUERY = """query repos($query: String!) {
    search(type: REPOSITORY, query: $query, first: %d) {
        edges {
            node {
                ... on Repository {
                    name
                    description
                    url
                    nameWithOwner
                }
            }
        }
    }
}""" % SEARCH_PAGE_SIZE


class FileType(enum.Enum):
    UNKNOWN = 0
    FILE = 1
    DIRECTORY = 2


def type_to_file_type(type_name):
    if type_name:
        type_name = type_name.lower()
    if type_name == "blob":
        return FileType.FILE
    if type_name == "tree":
        return FileType.DIRECTORY
    return FileType.UNKNOWN


@dataclass(frozen=True)
class FieldShape:
    """The fields requested for a repository object."""

    name: str
    fragment: str

    @property
    def digest(self):
        return sha1(compact_query(self.fragment))


STAT_SHAPE = FieldShape(
    "stat",
    """__typename
            ... on Blob {
                byteSize
            }""",
)

CHILDREN_SHAPE = FieldShape(
    "children",
    """__typename
            ... on Tree {
                entries {
                    name
                    type
                }
            }""",
)

CONTENT_SHAPE = FieldShape(
    "content",
    """__typename
            ... on Blob {
                oid
                isBinary
                text
            }""",
)


class QueryStatus(enum.Enum):
    FOUND = "found"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass(frozen=True)
class QueryResult:
    status: QueryStatus
    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def found(cls, value):
        return cls(QueryStatus.FOUND, value)

    @classmethod
    def absent(cls):
        return cls(QueryStatus.ABSENT)

    @classmethod
    def failed(cls, error):
        return cls(QueryStatus.FAILED, error=error)

    @property
    def ok(self):
        return self.status is QueryStatus.FOUND


@dataclass(frozen=True)
class FileEntry:
    kind: FileType
    size: int = 0
    is_binary: bool = False
    oid: Optional[str] = None
    text: Optional[str] = None
    entries: Tuple[Tuple[str, FileType], ...] = ()

    @classmethod
    def from_object(cls, data):
        entries = tuple(
            (e["name"], type_to_file_type(e.get("type"))) for e in (data.get("entries") or ())
        )
        return cls(
            kind=type_to_file_type(data.get("__typename")),
            size=data.get("byteSize") or 0,
            is_binary=bool(data.get("isBinary")),
            oid=data.get("oid"),
            text=data.get("text"),
            entries=entries,
        )


@dataclass(frozen=True)
class RepositorySummary:
    name: str
    description: Optional[str]
    url: str
    name_with_owner: str


class QueryError(Exception):
    """The remote reported errors for a query."""

    def __init__(self, errors):
        self.errors = errors
        super().__init__("; ".join(str(e.get("message", e)) for e in errors))

    @property
    def not_found(self):
        return all(e.get("type") == "NOT_FOUND" for e in self.errors)


def build_search_query(raw_query):
    """
    Translate free text into a github repository search query.

    owner/repo (or its url) searches repo names of that owner, owner/ lists the
    owner's repositories, anything else searches repo names. Returns None for
    text which cannot be searched.
    """
    raw = (raw_query or "").strip()
    if raw.endswith(".git"):
        raw = raw[:-4]
    if url_prefix_regex.match(raw):
        raw = url_prefix_regex.sub("", raw).strip("/")
    if not raw:
        return None

    owner_or_repo, sep, repo = raw.partition("/")
    repo = repo.split("/")[0]
    if not owner_or_repo:
        return None
    if repo:
        return f"{repo} in:name user:{owner_or_repo} sort:stars-desc"
    if sep:
        return f"user:{owner_or_repo} sort:stars-desc"
    return f"{owner_or_repo} in:name sort:stars-desc"


class GitHubApi:
    """
    Client for the github graphql api (plus the few rest calls graphql
    cannot answer).

    Every query fails soft: errors are logged and turned into a FAILED
    QueryResult, None or an empty list, they never reach the caller.
    """

    def __init__(self, credentials, settings=None, session_factory=build_session, logger=None):
        self.credentials = credentials
        self.settings = settings or Settings()
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)
        self._session = None
        self._unsubscribe = credentials.subscribe(self.on_credential_changed)

    def dispose(self):
        self._unsubscribe()
        self._session = None

    def has_credential(self):
        return self.credentials.has_credential()

    def on_credential_changed(self, token):
        # rebuilt with the new token on next use
        self._session = None

    @property
    def session(self):
        session = self._session
        if session is None:
            session = self.session_factory(self.credentials.require())
            self._session = session
        return session

    def _post(self, session, query, variables):
        response = session.post(
            self.settings.graphql_url,
            json={"query": query, "variables": variables},
            timeout=self.settings.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        errors = payload.get("errors")
        if errors:
            raise QueryError(errors)
        return payload["data"]

    def _get(self, session, path, params=None, headers=None):
        response = session.get(
            self.settings.rest_url + path,
            params=params,
            headers=headers,
            timeout=self.settings.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def _query(self, query, variables):
        session = self.session
        self.logger.debug(f"variables: {pretty_json(variables)}")
        return await asyncio.to_thread(self._post, session, query, variables)

    async def _rest(self, path, params=None, headers=None):
        session = self.session
        self.logger.debug(f"GET {path} {pretty_json(params or {})}")
        return await asyncio.to_thread(self._get, session, path, params, headers)

    def _failed(self, what, ex):
        if isinstance(ex, (MissingCredential, QueryError, requests.RequestException)):
            self.logger.error(f"{what} failed: {ex}")
        else:
            self.logger.exception(f"{what} failed: malformed response")
        return QueryResult.failed(ex)

    async def fetch_object(self, object_path, shape, revision=None):
        """Resolve a blob or tree at the revision-qualified path, as a QueryResult."""
        repo = object_path.repository
        variables = {
            "owner": repo.owner,
            "repo": repo.name,
            "path": revision_expression(object_path, revision),
        }
        what = f"fs query {repo.full_name} {variables['path']} ({shape.name})"
        try:
            data = await self._query(FS_QUERY % shape.fragment, variables)
            repository = data.get("repository")
            if repository is None or repository.get("object") is None:
                return QueryResult.absent()
            return QueryResult.found(repository["object"])
        except QueryError as ex:
            if ex.not_found:
                return QueryResult.absent()
            return self._failed(what, ex)
        except Exception as ex:
            return self._failed(what, ex)

    async def fetch_object_metadata(self, object_path, shape, revision=None):
        result = await self.fetch_object(object_path, shape, revision)
        if not result.ok:
            return None
        return FileEntry.from_object(result.value)

    async def resolve_default_revision(self, repository):
        variables = {"owner": repository.owner, "repo": repository.name}
        what = f"default revision of {repository.full_name}"
        try:
            data = await self._query(REPO_QUERY, variables)
            repo = data.get("repository")
            if repo is None or repo.get("defaultBranchRef") is None:
                return QueryResult.absent()
            return QueryResult.found(repo["defaultBranchRef"]["target"]["oid"])
        except QueryError as ex:
            if ex.not_found:
                return QueryResult.absent()
            return self._failed(what, ex)
        except Exception as ex:
            return self._failed(what, ex)

    async def fetch_default_revision(self, repository):
        result = await self.resolve_default_revision(repository)
        return result.value if result.ok else None

    async def search_repositories(self, query_text):
        search_query = build_search_query(query_text)
        if search_query is None:
            return []
        try:
            data = await self._query(REPOS_QUERY, {"query": search_query})
            search = data.get("search")
            if search is None:
                return []
            repositories = []
            for edge in search["edges"]:
                node = edge.get("node") or {}
                if "nameWithOwner" not in node:
                    continue
                repositories.append(
                    RepositorySummary(
                        name=node["name"],
                        description=node.get("description"),
                        url=node["url"],
                        name_with_owner=node["nameWithOwner"],
                    )
                )
            return repositories
        except Exception as ex:
            self._failed(f"repository search {search_query!r}", ex)
            return []

    async def fetch_tree_paths(self, repository, revision=None):
        """Paths of all blobs of the repository tree, None when it cannot be listed."""
        path = f"/repos/{repository.owner}/{repository.name}/git/trees/{revision or HEAD}"
        try:
            data = await self._rest(path, params={"recursive": 1})
            if data.get("truncated"):
                self.logger.warning(f"tree of {repository.full_name} is truncated")
            return [item["path"] for item in data["tree"] if item["type"] == "blob"]
        except Exception as ex:
            self._failed(f"tree listing of {repository.full_name}", ex)
            return None

    async def search_code(self, query, repository):
        """Code search within one repository, the raw result items with text matches."""
        params = {"q": f"{query} repo:{repository.owner}/{repository.name}"}
        headers = {"Accept": "application/vnd.github.v3.text-match+json"}
        try:
            data = await self._rest("/search/code", params=params, headers=headers)
            return data["items"]
        except Exception as ex:
            self._failed(f"code search {query!r} in {repository.full_name}", ex)
            return None
