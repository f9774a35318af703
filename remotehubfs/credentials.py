import asyncio
import logging
import os

TOKEN_ENV_VARS = ("REMOTEHUB_TOKEN", "GITHUB_TOKEN")


class MissingCredential(Exception):
    """No personal access token is configured."""


class CredentialProvider:
    """
    Holds the access token and tells subscribers when it changes.

    The token comes from, in order: an explicit value, a token file, the
    REMOTEHUB_TOKEN or GITHUB_TOKEN environment variables.
    """

    def __init__(self, token=None, token_file=None, environ=None, logger=None):
        self.logger = logger or logging.getLogger(__name__)
        self.token_file = token_file
        self._environ = os.environ if environ is None else environ
        self._listeners = []
        self._token_mtime = None
        self._token = token if token else self._load()

    def _load(self):
        if self.token_file:
            try:
                self._token_mtime = os.path.getmtime(self.token_file)
                with open(self.token_file, "r") as f:
                    token = f.read().strip()
                if token:
                    return token
            except OSError as ex:
                self.logger.warning(f"could not read token file {self.token_file}: {ex}")
        for key in TOKEN_ENV_VARS:
            token = self._environ.get(key)
            if token:
                return token.strip()
        return None

    @property
    def token(self):
        return self._token

    def has_credential(self):
        return bool(self._token)

    def require(self):
        if not self._token:
            raise MissingCredential("No GitHub personal access token could be found")
        return self._token

    def set_token(self, token):
        token = token.strip() if token else None
        if token == self._token:
            return
        self._token = token
        self.logger.info("access token changed")
        for listener in list(self._listeners):
            listener(token)

    def reload(self):
        self.set_token(self._load())

    def subscribe(self, listener):
        """Register a credential-changed listener, returns the unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def token_file_changed(self):
        if not self.token_file:
            return False
        try:
            mtime = os.path.getmtime(self.token_file)
        except OSError:
            return False
        return mtime != self._token_mtime

    async def watch_token_file(self, interval=5.0):
        """Poll the token file and reload it when it was rewritten."""
        while True:
            await asyncio.sleep(interval)
            if self.token_file_changed():
                self.reload()
