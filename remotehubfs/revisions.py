import asyncio
import logging


class RevisionTracker:
    """
    Pins every workspace root to one commit for the whole session, and
    remembers the blob oid last seen for each file.

    A root is unresolved, resolving (one fetch in flight, shared by all
    callers) or pinned. A failed fetch leaves the root unresolved so the
    next access tries again. The first pin of a root is never overwritten.
    """

    def __init__(self, api, logger=None):
        self.api = api
        self.logger = logger or logging.getLogger(__name__)
        self._pinned = {}
        self._observed = {}
        self._resolving = {}

    def pinned_revision_for(self, root):
        return self._pinned.get(root)

    async def ensure_pinned(self, root, repository):
        revision = self._pinned.get(root)
        if revision is not None:
            return revision

        future = self._resolving.get(root)
        if future is None:
            future = asyncio.ensure_future(self._resolve(root, repository))
            self._resolving[root] = future
        return await asyncio.shield(future)

    async def _resolve(self, root, repository):
        try:
            revision = await self.api.fetch_default_revision(repository)
        finally:
            self._resolving.pop(root, None)
        if revision is None:
            self.logger.warning(f"could not resolve the default revision of {root}")
            return None
        # first write wins
        revision = self._pinned.setdefault(root, revision)
        self.logger.info(f"pinned {root} to {revision}")
        return revision

    def record_observed_revision(self, identifier, revision):
        self._observed[identifier] = revision

    def observed_revision_for(self, identifier):
        return self._observed.get(identifier)

    def revision_for(self, identifier, root=None):
        revision = self._observed.get(identifier)
        if revision is None and root is not None:
            revision = self._pinned.get(root)
        return revision

    def roots(self):
        return list(self._pinned)

    def forget(self, root):
        """Drop the pin and the file observations of a root removed from the workspace."""
        self._pinned.pop(root, None)
        prefix = root.rstrip("/") + "/"
        for identifier in [i for i in self._observed if i == root or i.startswith(prefix)]:
            del self._observed[identifier]
