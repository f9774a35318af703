import asyncio
import logging
import posixpath
from dataclasses import dataclass
from typing import Optional

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed, wait_random

from .config import Settings
from .search import Range
from .uris import decompose, from_lsp_uri, repository_root, to_lsp_uri

CAPABILITY_FOR_METHOD = {
    "textDocument/definition": "definitionProvider",
    "textDocument/documentSymbol": "documentSymbolProvider",
    "textDocument/hover": "hoverProvider",
    "textDocument/implementation": "implementationProvider",
    "textDocument/references": "referencesProvider",
    "workspace/symbol": "workspaceSymbolProvider",
}

LANGUAGE_FOR_EXTENSION = {
    ".c": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".go": "go",
    ".java": "java",
    ".js": "javascript",
    ".jsx": "javascript",
    ".php": "php",
    ".py": "python",
    ".rb": "ruby",
    ".rs": "rust",
    ".ts": "typescript",
    ".tsx": "typescript",
}


def language_for(identifier, default="typescript"):
    _, ext = posixpath.splitext(decompose(identifier).path)
    return LANGUAGE_FOR_EXTENSION.get(ext.lower(), default)


def ensure_capability(capabilities, method):
    capability = CAPABILITY_FOR_METHOD.get(method)
    if capability is None:
        return True
    return bool(capabilities.get(capability))


def to_range(data):
    return Range(
        data["start"]["line"],
        data["start"]["character"],
        data["end"]["line"],
        data["end"]["character"],
    )


@dataclass(frozen=True)
class Location:
    identifier: str
    range: Range


@dataclass(frozen=True)
class Symbol:
    name: str
    kind: int
    container_name: Optional[str]
    location: Location


@dataclass(frozen=True)
class Hover:
    contents: str
    range: Optional[Range]


def hover_markdown(contents):
    if isinstance(contents, list):
        return "\n\n".join(hover_markdown(c) for c in contents if c)
    if isinstance(contents, dict):
        if contents.get("language"):
            return f"```{contents['language']}\n{contents.get('value', '')}\n```"
        return contents.get("value", "")
    return contents or ""


class LanguageClient:
    """
    Language intelligence for remote files through an lsp proxy.

    Each request is one batch of initialize, the method, shutdown and exit,
    addressed at the commit the workspace root is pinned to. Connection
    errors are retried, a failed request returns None.
    """

    def __init__(self, revisions, settings=None, session_factory=requests.Session,
                 attempts=3, retry_wait=wait_fixed(1) + wait_random(0, 2), logger=None):
        self.revisions = revisions
        self.settings = settings or Settings()
        self.session_factory = session_factory
        self.attempts = attempts
        self.retry_wait = retry_wait
        self.logger = logger or logging.getLogger(__name__)
        self._capabilities = {}
        self._session = None

    @property
    def session(self):
        if self._session is None:
            self._session = self.session_factory()
        return self._session

    def _send(self, session, method, body):
        retrying = Retrying(
            retry=retry_if_exception_type(requests.ConnectionError),
            stop=stop_after_attempt(self.attempts),
            wait=self.retry_wait,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self.logger.debug(f"lsp:{method}: retrying... #{attempt.retry_state.attempt_number - 1}")
                r = session.post(
                    f"{self.settings.lsp_url}/.api/xlang/{method}",
                    json=body,
                    timeout=self.settings.timeout,
                )
                r.raise_for_status()
                return r.json()

    async def lsp(self, method, params, identifier, language_id=None):
        root = repository_root(identifier)
        capabilities = self._capabilities.get(root)
        if capabilities is not None and not ensure_capability(capabilities, method):
            return None

        revision = await self.revisions.ensure_pinned(root, decompose(identifier).repository)
        params = dict(params)
        if method.startswith("textDocument/"):
            params["textDocument"] = {"uri": to_lsp_uri(identifier, revision)}

        body = [
            {
                "id": 0,
                "method": "initialize",
                "params": {
                    "rootUri": to_lsp_uri(root, revision, root=True),
                    "mode": language_id or language_for(identifier),
                },
            },
            {"id": 1, "method": method, "params": params},
            {"id": 2, "method": "shutdown"},
            {"method": "exit"},
        ]

        try:
            responses = await asyncio.to_thread(self._send, self.session, method, body)
        except (requests.RequestException, ValueError) as ex:
            self.logger.error(f"lsp:{method}: {ex}")
            return None

        try:
            return self._method_result(root, method, capabilities, responses)
        except (TypeError, KeyError, AttributeError, ValueError) as ex:
            self.logger.error(f"lsp:{method}: malformed response: {ex!r}")
            return None

    def _method_result(self, root, method, capabilities, responses):
        init_response, method_response = responses[:2]

        if init_response.get("error") or method_response.get("error"):
            if init_response.get("error"):
                self.logger.warning(f"lsp:initialize: {init_response['error'].get('message')}")
            if method_response.get("error"):
                self.logger.warning(f"lsp:{method}: {method_response['error'].get('message')}")
            return None

        caps = (init_response.get("result") or {}).get("capabilities")
        if caps and capabilities is None:
            self._capabilities[root] = caps
            if not ensure_capability(caps, method):
                return None

        return method_response.get("result")

    def _convert(self, method, convert, items):
        try:
            return [convert(item) for item in items]
        except (TypeError, KeyError, AttributeError, ValueError) as ex:
            self.logger.error(f"lsp:{method}: malformed result: {ex!r}")
            return None

    def _location(self, data):
        return Location(from_lsp_uri(data["uri"], self.settings.scheme), to_range(data["range"]))

    def _symbol(self, data):
        return Symbol(
            name=data["name"],
            kind=data.get("kind", 0),
            container_name=data.get("containerName"),
            location=self._location(data["location"]),
        )

    async def definition(self, identifier, line, character, language_id=None):
        params = {"position": {"line": line, "character": character}}
        result = await self.lsp("textDocument/definition", params, identifier, language_id)
        if not result:
            return None
        if isinstance(result, dict):
            result = [result]
        return self._convert("textDocument/definition", self._location, result)

    async def hover(self, identifier, line, character, language_id=None):
        params = {"position": {"line": line, "character": character}}
        result = await self.lsp("textDocument/hover", params, identifier, language_id)
        if not result:
            return None
        hovers = self._convert("textDocument/hover", self._hover, [result])
        return hovers[0] if hovers else None

    def _hover(self, data):
        range_ = to_range(data["range"]) if data.get("range") else None
        return Hover(hover_markdown(data.get("contents")), range_)

    async def references(self, identifier, line, character, include_declaration=True, language_id=None):
        params = {
            "position": {"line": line, "character": character},
            "context": {"includeDeclaration": include_declaration},
        }
        result = await self.lsp("textDocument/references", params, identifier, language_id)
        if result is None:
            return None
        return self._convert("textDocument/references", self._location, result)

    async def document_symbols(self, identifier, language_id=None):
        result = await self.lsp("textDocument/documentSymbol", {}, identifier, language_id)
        if result is None:
            return None
        return self._convert("textDocument/documentSymbol", self._symbol, result)

    async def workspace_symbols(self, query, root, language_id=None):
        result = await self.lsp("workspace/symbol", {"query": query}, root, language_id)
        if result is None:
            return None
        return self._convert("workspace/symbol", self._symbol, result)
