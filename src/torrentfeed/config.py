"""Process configuration read from environment variables."""

import os
from dataclasses import dataclass

from torrentfeed.feed_parser import DEFAULT_FETCH_TIMEOUT
from torrentfeed.poller import DEFAULT_POLL_INTERVAL
from torrentfeed.transmission import DEFAULT_RPC_TIMEOUT

DEFAULT_TRANSMISSION_URL = "http://localhost:9091/transmission/rpc"
DEFAULT_DB_PATH = "feeds.db"


@dataclass(frozen=True)
class Config:
    transmission_url: str = DEFAULT_TRANSMISSION_URL
    transmission_user: str = ""
    transmission_pass: str = ""
    db_path: str = DEFAULT_DB_PATH
    poll_interval: float = DEFAULT_POLL_INTERVAL
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Config":
        """Build a Config from the environment.

        Raises:
            ValueError: If a numeric setting is not a positive number.
        """
        env = os.environ if environ is None else environ
        return cls(
            transmission_url=env.get("TRANSMISSION_URL") or DEFAULT_TRANSMISSION_URL,
            transmission_user=env.get("TRANSMISSION_USER", ""),
            transmission_pass=env.get("TRANSMISSION_PASS", ""),
            db_path=env.get("DB_PATH") or DEFAULT_DB_PATH,
            poll_interval=_positive(env, "RSS_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            fetch_timeout=_positive(env, "RSS_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT),
            rpc_timeout=_positive(env, "RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )


def _positive(env, key: str, default: float) -> float:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value
