from .api import FileEntry, FileType, GitHubApi, QueryResult, QueryStatus, RepositorySummary
from .cache import CacheKey, LRUCache, ObjectCache
from .config import Settings
from .credentials import CredentialProvider, MissingCredential
from .fetchers import HttpFetcher
from .lsp import Hover, LanguageClient, Location, Symbol
from .provider import (
    FileNotFound,
    FileStat,
    FileSystemError,
    NoPermissions,
    ReadResult,
    RemoteFileSystemProvider,
)
from .revisions import RevisionTracker
from .search import Range, SearchMatch, SearchProvider, TextSearchComplete
from .uris import ObjectPath, RepositoryId, compose, decompose


def create_provider(settings, credentials, logger=None):
    """Wire the remote query client, revision tracker, object cache and raw fetcher into a provider."""
    api = GitHubApi(credentials, settings, logger=logger)
    revisions = RevisionTracker(api, logger=logger)
    fetcher = HttpFetcher(credentials, ssl_verify=settings.ssl_verify, timeout=settings.timeout, logger=logger)
    cache = ObjectCache(capacity=settings.object_cache_capacity)
    return RemoteFileSystemProvider(api, revisions, fetcher, cache, raw_host=settings.raw_host, logger=logger)
