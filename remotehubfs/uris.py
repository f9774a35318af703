# mapping between remotehub identifiers and github addressing
#
# remotehub://github.com/eamodio/vscode-gitlens/src/extension.ts
#   authority = github.com
#   owner     = eamodio
#   repo      = vscode-gitlens
#   path      = src/extension.ts

import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

SCHEME = "remotehub"
HEAD = "HEAD"

# owner/repo, or a web url of the repo
repository_regex = re.compile(r"^(?:https?://[^/]+/)?([^/\s]+?)/([^/\s]+?)(?:\.git)?/?$", re.IGNORECASE)


@dataclass(frozen=True)
class RepositoryId:
    authority: str
    owner: str
    name: str

    @property
    def full_name(self):
        return f"{self.owner}/{self.name}"

    def __str__(self):
        return f"{self.authority}/{self.owner}/{self.name}"


@dataclass(frozen=True)
class ObjectPath:
    repository: RepositoryId
    segments: Tuple[str, ...] = ()

    @property
    def path(self):
        return "/".join(self.segments)

    @property
    def is_repository_root(self):
        return not self.repository.owner or not self.repository.name


def _split(path):
    return [unquote(p) for p in path.split("/") if p != ""]


def decompose(identifier):
    """
    Split an identifier into repository and relative path.

    Missing owner or repo segments come back as empty strings, which callers
    treat as the repository root case.
    """
    parts = urlsplit(identifier)
    segments = _split(parts.path)
    owner = segments[0] if len(segments) > 0 else ""
    name = segments[1] if len(segments) > 1 else ""
    return ObjectPath(RepositoryId(parts.netloc, owner, name), tuple(segments[2:]))


def compose(repository, path="", scheme=SCHEME):
    if isinstance(path, (tuple, list)):
        segments = list(path)
    else:
        segments = _split(path)
    parts = [p for p in (repository.owner, repository.name) if p] + segments
    if not parts:
        return f"{scheme}://{repository.authority}"
    return f"{scheme}://{repository.authority}/" + "/".join(quote(p, safe="") for p in parts)


def compose_path(object_path, scheme=SCHEME):
    return compose(object_path.repository, object_path.segments, scheme)


def revision_expression(object_path, revision=None):
    return f"{revision or HEAD}:{object_path.path}"


def repository_root(identifier):
    object_path = decompose(identifier)
    return compose(object_path.repository, scheme=urlsplit(identifier).scheme or SCHEME)


def is_repository_root(identifier):
    # zero or one segment after the authority
    return len(_split(urlsplit(identifier).path)) <= 1


def join_path(identifier, fragment):
    base = identifier.rstrip("/")
    fragment = fragment.strip("/")
    if not fragment:
        return base
    return base + "/" + "/".join(quote(p, safe="") for p in fragment.split("/") if p)


def raw_content_url(object_path, raw_host="raw.githubusercontent.com"):
    # e.g. https://raw.githubusercontent.com/eamodio/vscode-gitlens/HEAD/images/gitlens-icon.png
    repo = object_path.repository
    path = "/".join(quote(p) for p in object_path.segments)
    return f"https://{raw_host}/{repo.owner}/{repo.name}/{HEAD}/{path}"


def to_lsp_uri(identifier, revision=None, root=False):
    # e.g. git://github.com/eamodio/vscode-gitlens?<sha>#src/extension.ts
    object_path = decompose(identifier)
    repo = object_path.repository
    uri = f"git://{repo.authority}/{repo.owner}/{repo.name}?{revision or HEAD}"
    if root:
        return uri
    return f"{uri}#{object_path.path}"


def from_lsp_uri(uri, scheme=SCHEME):
    parts = urlsplit(uri)
    segments = _split(parts.path)
    if len(segments) < 2:
        raise ValueError(f"not a repository uri: {uri}")
    repository = RepositoryId(parts.netloc, segments[0], segments[1])
    return compose(repository, unquote(parts.fragment), scheme)


def parse_repository(text, authority="github.com") -> Optional[RepositoryId]:
    """Parse owner/repo or https://github.com/owner/repo(.git), None otherwise."""
    match = repository_regex.match(text.strip())
    if match is None:
        return None
    owner, name = match.groups()
    return RepositoryId(authority, owner, name)
