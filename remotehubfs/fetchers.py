import asyncio
import logging

from .session import build_session


class HttpFetcher:
    """
    Plain downloads of raw file content.

    Binary blobs are not embedded in graphql responses, they are fetched
    from the raw content host instead.
    """

    def __init__(self, credentials=None, ssl_verify=True, timeout=None, session_factory=build_session, logger=None):
        self.logger = logger or logging.getLogger(__name__)
        self.credentials = credentials
        self.ssl_verify = ssl_verify
        self.timeout = timeout
        self.session_factory = session_factory
        self._session = None
        if credentials is not None:
            self._unsubscribe = credentials.subscribe(self.on_credential_changed)
        else:
            self._unsubscribe = lambda: None
        if not self.ssl_verify:
            self.logger.warning(
                "You have set ssl certificates to not be verified. "
                "This may leave you vulnerable. "
                "http://docs.python-requests.org/en/master/user/advanced/#ssl-cert-verification"
            )

    def dispose(self):
        self._unsubscribe()
        self._session = None

    def on_credential_changed(self, token):
        self._session = None

    @property
    def session(self):
        session = self._session
        if session is None:
            # raw.githubusercontent.com wants "token", not "Bearer"
            token = self.credentials.token if self.credentials is not None else None
            session = self.session_factory(token, token_type="token")
            self._session = session
        return session

    def get_data(self, session, url):
        r = session.get(url, verify=self.ssl_verify, timeout=self.timeout)
        r.raise_for_status()
        return r.content

    async def fetch(self, url):
        self.logger.debug(f"download {url}")
        return await asyncio.to_thread(self.get_data, self.session, url)
