"""Session-managed client for the Transmission RPC protocol."""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

import httpx

from torrentfeed.rpc_models import (
    PEER_FIELDS,
    FreeSpace,
    FreeSpaceRequest,
    Peer,
    PortTestRequest,
    RPCRequest,
    SessionStats,
    SessionStatsRequest,
    Torrent,
    TorrentAdded,
    TorrentAddRequest,
    TorrentGetRequest,
    TorrentReannounceRequest,
    TorrentRemoveRequest,
    TorrentStartRequest,
    TorrentStopRequest,
)

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Transmission-Session-Id"
DEFAULT_RPC_TIMEOUT = 10.0
RPC_SUCCESS = "success"


class TransmissionError(Exception):
    """Base class for daemon call failures."""


class TransportError(TransmissionError):
    """The daemon was unreachable or answered with a non-success HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(TransmissionError):
    """The daemon answered but reported (or encoded) a failure."""


class SessionError(ProtocolError):
    """The daemon kept rejecting the session id after a refresh."""


class _ReadWriteLock:
    """Many concurrent readers or a single writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


class TransmissionClient:
    """Executes RPC calls against a Transmission daemon.

    The session id is negotiated lazily: the first request (or any request
    after the daemon expires the session) is answered with HTTP 409 and a
    fresh id, which is stored and the request is retried once.
    """

    def __init__(
        self,
        url: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        self.url = url
        auth = httpx.BasicAuth(username, password or "") if username else None
        self._http = httpx.Client(timeout=timeout, auth=auth, transport=transport)
        self._session_id = ""
        self._session_lock = _ReadWriteLock()

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "TransmissionClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # --- Core protocol ---

    def execute(self, method: str, arguments: dict[str, Any] | None = None) -> dict:
        """Run one RPC method and return the response's ``arguments`` object.

        Raises:
            TransportError: Network failure or non-200 status.
            SessionError: The daemon rejected the refreshed session id.
            ProtocolError: Undecodable body or a non-success ``result``.
        """
        payload: dict[str, Any] = {"method": method}
        if arguments:
            payload["arguments"] = arguments

        response = self._post(payload)
        if response.status_code == 409:
            self._refresh_session(response)
            response = self._post(payload)
            if response.status_code == 409:
                raise SessionError(
                    f"{method}: daemon rejected the refreshed session id"
                )

        if response.status_code != 200:
            raise TransportError(
                f"{method}: HTTP error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise ProtocolError(f"{method}: invalid JSON response: {e}") from e

        if not isinstance(body, dict):
            raise ProtocolError(f"{method}: unexpected response: {body!r}")

        result = body.get("result")
        if result != RPC_SUCCESS:
            raise ProtocolError(f"{method}: RPC error: {result}")

        return body.get("arguments") or {}

    def call(self, request: RPCRequest) -> dict:
        """Execute a typed request."""
        return self.execute(request.method, request.arguments())

    def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {}
        session_id = self._current_session_id()
        if session_id:
            headers[SESSION_HEADER] = session_id
        try:
            return self._http.post(self.url, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise TransportError(f"{payload['method']}: {e}") from e

    def _current_session_id(self) -> str:
        with self._session_lock.read():
            return self._session_id

    def _refresh_session(self, response: httpx.Response) -> None:
        new_id = response.headers.get(SESSION_HEADER)
        if not new_id:
            raise SessionError("daemon sent 409 without a session id")
        with self._session_lock.write():
            self._session_id = new_id
        logger.debug("Negotiated new RPC session id")

    # --- Operations ---

    def get_torrents(self) -> list[Torrent]:
        """List torrents with the standard field projection."""
        args = self.call(TorrentGetRequest())
        return [Torrent.from_dict(t) for t in args.get("torrents", [])]

    def get_session_stats(self) -> SessionStats:
        return SessionStats.from_dict(self.call(SessionStatsRequest()))

    def test_port(self) -> bool:
        """Ask the daemon whether its peer port is reachable from outside."""
        args = self.call(PortTestRequest())
        return bool(args.get("port-is-open", False))

    def get_free_space(self, path: str) -> FreeSpace:
        return FreeSpace.from_dict(self.call(FreeSpaceRequest(path=path)))

    def add_torrent(
        self, filename: str | None = None, metainfo: bytes | None = None
    ) -> TorrentAdded:
        """Add a torrent by magnet/URL or by raw .torrent bytes (exactly one).

        Raises:
            ValueError: If neither or both sources are given.
        """
        request = TorrentAddRequest(filename=filename, metainfo=metainfo)
        return TorrentAdded.from_dict(self.call(request))

    def start_torrent(self, torrent_id: int) -> None:
        self.call(TorrentStartRequest(ids=(torrent_id,)))

    def stop_torrent(self, torrent_id: int) -> None:
        self.call(TorrentStopRequest(ids=(torrent_id,)))

    def remove_torrent(self, torrent_id: int, delete_data: bool = False) -> None:
        self.call(TorrentRemoveRequest(ids=(torrent_id,), delete_local_data=delete_data))

    def reannounce_torrent(self, torrent_id: int) -> None:
        self.call(TorrentReannounceRequest(ids=(torrent_id,)))

    def reannounce_all(self) -> None:
        self.call(TorrentReannounceRequest())

    def get_peers(self, torrent_id: int) -> list[Peer]:
        args = self.call(TorrentGetRequest(fields=PEER_FIELDS, ids=(torrent_id,)))
        torrents = args.get("torrents", [])
        if not torrents:
            return []
        return [Peer.from_dict(p) for p in torrents[0].get("peers", [])]
