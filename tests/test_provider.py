"""Tests for the read only filesystem provider."""

import errno
from unittest.mock import AsyncMock, Mock

import pytest
import requests

from remotehubfs.api import CHILDREN_SHAPE, CONTENT_SHAPE, STAT_SHAPE, FileType, QueryResult, QueryStatus
from remotehubfs.provider import FileNotFound, FileStat, NoPermissions, RemoteFileSystemProvider

from conftest import ROOT


@pytest.fixture
def fetcher():
    fetcher = Mock()
    fetcher.fetch = AsyncMock(return_value=b"\x89PNG")
    return fetcher


@pytest.fixture
def provider(api, revisions, fetcher):
    return RemoteFileSystemProvider(api, revisions, fetcher)


def answer(objects):
    """fetch_object double answering per (path, shape name)."""

    async def fetch_object(object_path, shape, revision=None):
        value = objects.get((object_path.path, shape.name))
        if isinstance(value, QueryResult):
            return value
        if value is None:
            return QueryResult.absent()
        return QueryResult.found(value)

    return fetch_object


class TestStat:
    @pytest.mark.asyncio
    async def test_repository_root_makes_no_remote_call(self, api, provider):
        for identifier in ("remotehub://github.com", "remotehub://github.com/o"):
            stat = await provider.stat(identifier)
            assert stat == FileStat(FileType.DIRECTORY, 0)

        api.fetch_object.assert_not_called()
        api.fetch_default_revision.assert_not_called()

    @pytest.mark.asyncio
    async def test_repository_is_queried(self, api, provider):
        api.fetch_object.side_effect = answer({("", "stat"): {"__typename": "Tree"}})

        assert await provider.stat(ROOT) == FileStat(FileType.DIRECTORY, 0)
        assert api.fetch_object.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_repository_is_not_found(self, api, provider):
        api.fetch_default_revision.return_value = None

        with pytest.raises(FileNotFound):
            await provider.stat("remotehub://github.com/o/does-not-exist")

    @pytest.mark.asyncio
    async def test_file(self, api, provider):
        api.fetch_object.side_effect = answer({("a.txt", "stat"): {"__typename": "Blob", "byteSize": 5}})

        stat = await provider.stat(ROOT + "/a.txt")

        assert stat == FileStat(FileType.FILE, 5)
        object_path, shape, revision = api.fetch_object.call_args.args
        assert object_path.path == "a.txt"
        assert shape is STAT_SHAPE
        assert revision == "abc"

    @pytest.mark.asyncio
    async def test_directory(self, api, provider):
        api.fetch_object.side_effect = answer({("src", "stat"): {"__typename": "Tree"}})

        assert (await provider.stat(ROOT + "/src")).kind is FileType.DIRECTORY

    @pytest.mark.asyncio
    async def test_repeated_stat_is_cached(self, api, provider):
        api.fetch_object.side_effect = answer({("a.txt", "stat"): {"__typename": "Blob", "byteSize": 5}})

        first = await provider.stat(ROOT + "/a.txt")
        second = await provider.stat(ROOT + "/a.txt")

        assert first == second
        assert api.fetch_object.await_count == 1
        assert api.fetch_default_revision.await_count == 1

    @pytest.mark.asyncio
    async def test_absent_is_not_found_and_cached(self, api, provider):
        with pytest.raises(FileNotFound) as excinfo:
            await provider.stat(ROOT + "/missing")
        with pytest.raises(FileNotFound):
            await provider.stat(ROOT + "/missing")

        assert excinfo.value.errno == errno.ENOENT
        assert api.fetch_object.await_count == 1

    @pytest.mark.asyncio
    async def test_failure_is_not_found_and_not_cached(self, api, provider):
        api.fetch_object.return_value = QueryResult.failed(requests.ConnectionError())

        with pytest.raises(FileNotFound):
            await provider.stat(ROOT + "/a.txt")
        with pytest.raises(FileNotFound):
            await provider.stat(ROOT + "/a.txt")

        assert api.fetch_object.await_count == 2

    @pytest.mark.asyncio
    async def test_unpinned_answers_are_not_kept(self, api, provider):
        api.fetch_default_revision.return_value = None
        api.fetch_object.side_effect = answer({("a.txt", "stat"): {"__typename": "Blob", "byteSize": 5}})

        await provider.stat(ROOT + "/a.txt")
        assert api.fetch_object.call_args.args[2] is None

        api.fetch_default_revision.return_value = "abc"
        api.fetch_object.side_effect = answer({})

        with pytest.raises(FileNotFound):
            await provider.stat(ROOT + "/a.txt")
        assert api.fetch_object.call_args.args[2] == "abc"
        assert api.fetch_object.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_object_is_not_found(self, api, provider):
        api.fetch_object.side_effect = answer({("sub", "stat"): {"__typename": "Commit"}})

        with pytest.raises(FileNotFound):
            await provider.stat(ROOT + "/sub")


class TestListDirectory:
    @pytest.mark.asyncio
    async def test_remote_order(self, api, provider):
        entries = [{"name": "b.txt", "type": "blob"}, {"name": "a", "type": "tree"}]
        api.fetch_object.side_effect = answer({("", "children"): {"__typename": "Tree", "entries": entries}})

        listing = await provider.list_directory(ROOT)

        assert listing == [("b.txt", FileType.FILE), ("a", FileType.DIRECTORY)]
        assert api.fetch_object.call_args.args[1] is CHILDREN_SHAPE

    @pytest.mark.asyncio
    async def test_absent_is_empty(self, provider):
        assert await provider.list_directory(ROOT + "/missing") == []

    @pytest.mark.asyncio
    async def test_file_is_empty(self, api, provider):
        api.fetch_object.side_effect = answer({("a.txt", "children"): {"__typename": "Blob"}})

        assert await provider.list_directory(ROOT + "/a.txt") == []

    @pytest.mark.asyncio
    async def test_incomplete_repository_is_empty(self, api, provider):
        assert await provider.list_directory("remotehub://github.com/o") == []
        api.fetch_object.assert_not_called()


class TestReadFile:
    @pytest.mark.asyncio
    async def test_text(self, api, provider, fetcher):
        blob = {"__typename": "Blob", "oid": "blob1", "isBinary": False, "text": "hello"}
        api.fetch_object.side_effect = answer({("a.txt", "content"): blob})

        assert await provider.read_file(ROOT + "/a.txt") == b"hello"
        assert api.fetch_object.call_args.args[1] is CONTENT_SHAPE
        assert provider.observed_revision_for(ROOT + "/a.txt") == "blob1"
        assert provider.revision_for(ROOT + "/a.txt") == "blob1"
        fetcher.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_unicode_text_is_utf8(self, api, provider):
        blob = {"__typename": "Blob", "oid": "blob1", "isBinary": False, "text": "héllo"}
        api.fetch_object.side_effect = answer({("a.txt", "content"): blob})

        assert await provider.read_file(ROOT + "/a.txt") == "héllo".encode("utf8")

    @pytest.mark.asyncio
    async def test_binary_is_downloaded(self, api, provider, fetcher):
        blob = {"__typename": "Blob", "oid": "blob2", "isBinary": True, "text": None}
        api.fetch_object.side_effect = answer({("img/icon.png", "content"): blob})

        content = await provider.read_file(ROOT + "/img/icon.png")

        assert content == b"\x89PNG"
        fetcher.fetch.assert_awaited_once_with("https://raw.githubusercontent.com/o/r/HEAD/img/icon.png")

    @pytest.mark.asyncio
    async def test_download_failure(self, api, provider, fetcher):
        blob = {"__typename": "Blob", "oid": "blob2", "isBinary": True}
        api.fetch_object.side_effect = answer({("img/icon.png", "content"): blob})
        fetcher.fetch.side_effect = requests.ConnectionError("boom")

        result = await provider.read_file_result(ROOT + "/img/icon.png")

        assert result.content == b""
        assert result.status is QueryStatus.FAILED

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, provider):
        result = await provider.read_file_result(ROOT + "/missing")

        assert result.content == b""
        assert result.status is QueryStatus.ABSENT

    @pytest.mark.asyncio
    async def test_query_failure(self, api, provider):
        api.fetch_object.return_value = QueryResult.failed(requests.Timeout())

        result = await provider.read_file_result(ROOT + "/a.txt")

        assert result.content == b""
        assert result.status is QueryStatus.FAILED

    @pytest.mark.asyncio
    async def test_directory_is_empty(self, api, provider):
        api.fetch_object.side_effect = answer({("src", "content"): {"__typename": "Tree"}})

        assert await provider.read_file(ROOT + "/src") == b""

    @pytest.mark.asyncio
    async def test_reads_share_the_pin(self, api, provider):
        blob = {"__typename": "Blob", "oid": "blob1", "isBinary": False, "text": "hello"}
        api.fetch_object.side_effect = answer({("a.txt", "content"): blob, ("a.txt", "stat"): blob})

        await provider.stat(ROOT + "/a.txt")
        await provider.read_file(ROOT + "/a.txt")
        await provider.read_file(ROOT + "/a.txt")

        assert api.fetch_default_revision.await_count == 1
        assert provider.pinned_revision_for(ROOT + "/a.txt") == "abc"


class TestReadOnly:
    @pytest.mark.parametrize(
        "operation, args",
        [
            ("create_directory", (ROOT + "/new",)),
            ("write_file", (ROOT + "/a.txt", b"data")),
            ("delete", (ROOT + "/a.txt",)),
            ("rename", (ROOT + "/a.txt", ROOT + "/b.txt")),
            ("copy", (ROOT + "/a.txt", ROOT + "/b.txt")),
        ],
    )
    def test_mutations_are_denied(self, api, provider, operation, args):
        with pytest.raises(NoPermissions) as excinfo:
            getattr(provider, operation)(*args)

        assert excinfo.value.errno == errno.EACCES
        api.fetch_object.assert_not_called()

    def test_watch_is_a_no_op(self, provider):
        disposable = provider.watch(ROOT, recursive=True)
        disposable.dispose()
        disposable.dispose()
