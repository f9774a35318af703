from unittest.mock import AsyncMock, Mock

import pytest

from remotehubfs.api import QueryResult
from remotehubfs.revisions import RevisionTracker

ROOT = "remotehub://github.com/o/r"


def json_response(payload):
    response = Mock()
    response.json.return_value = payload
    return response


@pytest.fixture
def api():
    """A remote query client double, the default branch of every repo is at abc."""
    api = Mock()
    api.fetch_default_revision = AsyncMock(return_value="abc")
    api.fetch_object = AsyncMock(return_value=QueryResult.absent())
    api.fetch_tree_paths = AsyncMock(return_value=[])
    api.search_code = AsyncMock(return_value=[])
    return api


@pytest.fixture
def revisions(api):
    return RevisionTracker(api)
