# based on
# https://github.com/higlass/simple-httpfs
# http://thepythoncorner.com/dev/writing-a-fuse-filesystem-in-python/

import asyncio
import errno
import logging
import os
import shutil
import threading
import time
from stat import S_IFDIR, S_IFREG

import diskcache  # https://github.com/grantjenks/python-diskcache/
from fuse import FuseOSError, LoggingMixIn, Operations

from .api import FileType, QueryStatus
from .cache import LRUCache
from .provider import FileSystemError
from .uris import SCHEME, compose

ENOATTR = getattr(errno, "ENOATTR", errno.ENODATA)

XATTR_REVISION = "user.remotehub.revision"
XATTR_OID = "user.remotehub.oid"


class EventLoopThread:
    """
    An asyncio loop running in its own thread, fuse threads submit coroutines to it.

    The loop and its thread are only created by start(), fuse calls init()
    after it forked into the background.
    """

    def __init__(self, name="remotehubfs-loop"):
        self.name = name
        self.loop = None
        self.thread = None

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    @property
    def running(self):
        return self.thread is not None and self.thread.is_alive()

    def start(self):
        if self.running:
            return self
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self.thread.start()
        return self

    def spawn(self, coro):
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def run(self, coro, timeout=None):
        return self.spawn(coro).result(timeout)

    def call_soon(self, callback, *args):
        self.loop.call_soon_threadsafe(callback, *args)

    def stop(self):
        if not self.running:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join()
        self.loop.close()


class RemoteHubFs(LoggingMixIn, Operations):
    """
    Mounts workspace roots as /<owner>/<repo>/<path>.

    Directory and file metadata come from the provider. File content is read
    whole on first access and kept in an lru cache backed by a temporary disk
    cache, fuse then reads slices of it.
    """

    def __init__(self, provider, roots, loop_thread, scheme=SCHEME, lru_capacity=400,
                 disk_cache_size=2 ** 30, disk_cache_dir=None, credentials=None,
                 token_poll_interval=5.0, logger=None):
        self.provider = provider
        self.credentials = credentials
        self.token_poll_interval = token_poll_interval
        self.roots = {(r.owner, r.name): r for r in roots}
        self.owners = sorted({r.owner for r in roots})
        self.authority = roots[0].authority if roots else "github.com"
        self.loop_thread = loop_thread
        self.scheme = scheme
        self.logger = logger or logging.getLogger(__name__)
        self.mount_time = time.time()

        self.lru_cache = LRUCache(capacity=lru_capacity)
        self.lru_lock = threading.Lock()
        self.disk_cache_dir = disk_cache_dir
        self.disk_cache_size = disk_cache_size
        self.disk_cache = None

    def init(self, path):
        # runs in the mounted process, after fuse went to the background
        self.loop_thread.start()
        # no directory: diskcache makes a temporary one, removed in destroy
        self.disk_cache = diskcache.Cache(self.disk_cache_dir, size_limit=self.disk_cache_size)
        self.logger.info(f"disk cache {self.disk_cache.directory} size limit {self.disk_cache_size}")
        if self.credentials is not None and self.credentials.token_file:
            self.loop_thread.spawn(self.credentials.watch_token_file(self.token_poll_interval))

    def destroy(self, path):
        self.loop_thread.stop()
        if self.disk_cache is None:
            return
        directory = self.disk_cache.directory
        self.disk_cache.close()
        if self.disk_cache_dir is None:
            shutil.rmtree(directory, ignore_errors=True)

    # helpers

    @staticmethod
    def _split(path):
        return [p for p in path.split("/") if p]

    def _identifier(self, path):
        parts = self._split(path)
        repository = self.roots.get(tuple(parts[:2]))
        if repository is None:
            raise FuseOSError(errno.ENOENT)
        return compose(repository, parts[2:], self.scheme)

    def _call(self, coro):
        try:
            return self.loop_thread.run(coro)
        except FileSystemError as ex:
            raise FuseOSError(ex.errno)

    def _mutate(self, operation, *paths):
        # any path, inside a workspace root or not, is read only
        identifiers = [f"{self.scheme}://{self.authority}{p}" for p in paths]
        try:
            operation(*identifiers)
        except FileSystemError as ex:
            raise FuseOSError(ex.errno)

    def _attrs(self, kind, size=0):
        attrs = dict(
            st_uid=os.getuid(),
            st_gid=os.getgid(),
            st_ctime=self.mount_time,
            st_mtime=self.mount_time,
            st_atime=self.mount_time,
        )
        if kind is FileType.DIRECTORY:
            attrs.update(st_mode=(S_IFDIR | 0o555), st_nlink=2)
        else:
            attrs.update(st_mode=(S_IFREG | 0o444), st_nlink=1, st_size=size)
        return attrs

    def _content(self, path):
        identifier = self._identifier(path)
        with self.lru_lock:
            if identifier in self.lru_cache:
                return self.lru_cache[identifier]

        content = self.disk_cache.get(identifier)
        if content is None:
            result = self._call(self.provider.read_file_result(identifier))
            if result.status is QueryStatus.FAILED:
                raise FuseOSError(errno.EIO)
            content = result.content
            if result.status is QueryStatus.FOUND:
                self.disk_cache[identifier] = content

        with self.lru_lock:
            self.lru_cache[identifier] = content
        return content

    # read

    def getattr(self, path, fh=None):
        parts = self._split(path)
        if not parts:
            return self._attrs(FileType.DIRECTORY)
        if len(parts) == 1:
            if parts[0] in self.owners:
                return self._attrs(FileType.DIRECTORY)
            raise FuseOSError(errno.ENOENT)
        if len(parts) == 2 and tuple(parts) in self.roots:
            return self._attrs(FileType.DIRECTORY)

        stat = self._call(self.provider.stat(self._identifier(path)))
        return self._attrs(stat.kind, stat.size)

    def readdir(self, path, fh):
        parts = self._split(path)
        if not parts:
            names = self.owners
        elif len(parts) == 1:
            if parts[0] not in self.owners:
                raise FuseOSError(errno.ENOENT)
            names = sorted(name for owner, name in self.roots if owner == parts[0])
        else:
            entries = self._call(self.provider.list_directory(self._identifier(path)))
            names = [name for name, kind in entries]
        return [".", ".."] + list(names)

    def open(self, path, flags):
        if flags & (os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_TRUNC):
            self._mutate(self.provider.write_file, path)
        return 0

    def read(self, path, size, offset, fh):
        content = self._content(path)
        return content[offset:offset + size]

    def getxattr(self, path, name, position=0):
        identifier = self._identifier(path)
        if name == XATTR_REVISION:
            value = self.provider.pinned_revision_for(identifier)
        elif name == XATTR_OID:
            value = self.provider.observed_revision_for(identifier)
        else:
            value = None
        if value is None:
            raise FuseOSError(ENOATTR)
        return value.encode("ascii")

    def listxattr(self, path):
        if len(self._split(path)) < 2:
            return []
        identifier = self._identifier(path)
        names = []
        if self.provider.pinned_revision_for(identifier) is not None:
            names.append(XATTR_REVISION)
        if self.provider.observed_revision_for(identifier) is not None:
            names.append(XATTR_OID)
        return names

    def statfs(self, path):
        return dict(f_bsize=4096, f_frsize=4096, f_blocks=0, f_bfree=0, f_bavail=0, f_namemax=255)

    # read only

    def mkdir(self, path, mode):
        self._mutate(self.provider.create_directory, path)

    def rmdir(self, path):
        self._mutate(self.provider.delete, path)

    def unlink(self, path):
        self._mutate(self.provider.delete, path)

    def rename(self, old, new):
        self._mutate(self.provider.rename, old, new)

    def link(self, target, source):
        self._mutate(self.provider.copy, source, target)

    def symlink(self, target, source):
        self._mutate(self.provider.write_file, target)

    def create(self, path, mode, fi=None):
        self._mutate(self.provider.write_file, path)

    def write(self, path, data, offset, fh):
        self._mutate(self.provider.write_file, path)

    def truncate(self, path, length, fh=None):
        self._mutate(self.provider.write_file, path)

    def chmod(self, path, mode):
        self._mutate(self.provider.write_file, path)

    def chown(self, path, uid, gid):
        self._mutate(self.provider.write_file, path)

    def utimens(self, path, times=None):
        self._mutate(self.provider.write_file, path)
