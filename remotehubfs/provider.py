import errno
import logging
import os
from dataclasses import dataclass

import requests

from .api import CHILDREN_SHAPE, CONTENT_SHAPE, STAT_SHAPE, FileEntry, FileType, QueryStatus
from .cache import NOT_FOUND, ObjectCache
from .uris import decompose, is_repository_root, raw_content_url, repository_root


class FileSystemError(OSError):
    errno_code = errno.EIO

    def __init__(self, identifier=None):
        super().__init__(self.errno_code, os.strerror(self.errno_code), identifier)


class FileNotFound(FileSystemError):
    errno_code = errno.ENOENT


class NoPermissions(FileSystemError):
    errno_code = errno.EACCES


@dataclass(frozen=True)
class FileStat:
    kind: FileType
    size: int = 0
    ctime: int = 0
    mtime: int = 0


@dataclass(frozen=True)
class ReadResult:
    content: bytes
    status: QueryStatus


class Disposable:
    def __init__(self, on_dispose=None):
        self._on_dispose = on_dispose

    def dispose(self):
        if self._on_dispose is not None:
            self._on_dispose()
            self._on_dispose = None


def _unpack(result):
    if result.status is QueryStatus.FOUND:
        return result.value
    if result.status is QueryStatus.ABSENT:
        return NOT_FOUND
    # failures are not cached, the next access asks again
    return None


class RemoteFileSystemProvider:
    """
    Read only filesystem over remote repositories.

    Identifiers look like remotehub://github.com/<owner>/<repo>/<path>. Every
    query runs against the revision the repository root is pinned to. Remote
    failures surface as "not found", never as exceptions.
    """

    def __init__(self, api, revisions, fetcher, cache=None, raw_host="raw.githubusercontent.com", logger=None):
        self.api = api
        self.revisions = revisions
        self.fetcher = fetcher
        self.cache = cache if cache is not None else ObjectCache()
        self.raw_host = raw_host
        self.logger = logger or logging.getLogger(__name__)

    async def _pinned(self, identifier, object_path):
        return await self.revisions.ensure_pinned(repository_root(identifier), object_path.repository)

    async def _query(self, identifier, object_path, shape):
        revision = await self._pinned(identifier, object_path)
        return await self.api.fetch_object(object_path, shape, revision)

    async def _cached_entry(self, identifier, shape):
        object_path = decompose(identifier)
        if object_path.is_repository_root:
            return None

        revision = await self._pinned(identifier, object_path)

        async def producer():
            return _unpack(await self.api.fetch_object(object_path, shape, revision))

        # answers for an unpinned root come from HEAD and are not kept
        data = await self.cache.get_or_compute(
            ObjectCache.key(identifier, shape),
            producer,
            cacheable=lambda value: value is not None and revision is not None,
        )
        if data is None or data is NOT_FOUND:
            return None
        return FileEntry.from_object(data)

    async def stat(self, identifier):
        if is_repository_root(identifier):
            return FileStat(FileType.DIRECTORY, 0)

        entry = await self._cached_entry(identifier, STAT_SHAPE)
        if entry is None or entry.kind is FileType.UNKNOWN:
            raise FileNotFound(identifier)
        return FileStat(entry.kind, entry.size)

    async def list_directory(self, identifier):
        entry = await self._cached_entry(identifier, CHILDREN_SHAPE)
        if entry is None:
            return []
        return list(entry.entries)

    async def read_file_result(self, identifier):
        object_path = decompose(identifier)
        if object_path.is_repository_root:
            return ReadResult(b"", QueryStatus.ABSENT)

        result = await self._query(identifier, object_path, CONTENT_SHAPE)
        if result.status is QueryStatus.FAILED:
            self.logger.warning(f"read {identifier}: remote query failed, reporting empty content")
            return ReadResult(b"", QueryStatus.FAILED)
        if result.status is QueryStatus.ABSENT:
            return ReadResult(b"", QueryStatus.ABSENT)

        entry = FileEntry.from_object(result.value)
        if entry.kind is not FileType.FILE:
            return ReadResult(b"", QueryStatus.ABSENT)
        if entry.oid:
            self.revisions.record_observed_revision(identifier, entry.oid)

        if not entry.is_binary:
            return ReadResult((entry.text or "").encode("utf8"), QueryStatus.FOUND)

        url = raw_content_url(object_path, self.raw_host)
        try:
            content = await self.fetcher.fetch(url)
        except requests.RequestException as ex:
            self.logger.error(f"read {identifier}: download of {url} failed: {ex}")
            return ReadResult(b"", QueryStatus.FAILED)
        return ReadResult(content, QueryStatus.FOUND)

    async def read_file(self, identifier):
        result = await self.read_file_result(identifier)
        return result.content

    def watch(self, identifier, recursive=False, excludes=()):
        # remote repositories are not watched
        return Disposable()

    def revision_for(self, identifier):
        return self.revisions.revision_for(identifier, repository_root(identifier))

    def observed_revision_for(self, identifier):
        return self.revisions.observed_revision_for(identifier)

    def pinned_revision_for(self, identifier):
        return self.revisions.pinned_revision_for(repository_root(identifier))

    # read only

    def create_directory(self, identifier):
        raise NoPermissions(identifier)

    def write_file(self, identifier, content=b"", create=True, overwrite=True):
        raise NoPermissions(identifier)

    def delete(self, identifier, recursive=False):
        raise NoPermissions(identifier)

    def rename(self, source, destination, overwrite=False):
        raise NoPermissions(source)

    def copy(self, source, destination, overwrite=False):
        raise NoPermissions(source)
