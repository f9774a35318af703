import os
from dataclasses import dataclass
from typing import Optional

FALSY = {0, "0", False, "false", "False", "FALSE", "off", "OFF"}


@dataclass
class Settings:
    authority: str = "github.com"
    scheme: str = "remotehub"
    graphql_url: str = "https://api.github.com/graphql"
    rest_url: str = "https://api.github.com"
    raw_host: str = "raw.githubusercontent.com"
    lsp_url: str = "https://sourcegraph.com"
    timeout: Optional[float] = None
    ssl_verify: bool = True
    token_file: Optional[str] = None
    token_poll_interval: float = 5.0
    object_cache_capacity: Optional[int] = None
    lru_capacity: int = 400
    disk_cache_size: int = 2 ** 30

    @classmethod
    def from_args(cls, args, environ=None):
        """Build settings from parsed command line arguments (a dict) and the environment."""
        environ = os.environ if environ is None else environ
        settings = cls(ssl_verify=environ.get("SSL_VERIFY", True) not in FALSY)
        for key in cls.__dataclass_fields__:
            if args.get(key) is not None:
                setattr(settings, key, args[key])
        return settings
