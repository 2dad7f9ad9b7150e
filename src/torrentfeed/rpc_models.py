"""Typed request and response shapes for the Transmission RPC protocol."""

import base64
from dataclasses import dataclass, field
from typing import Any, ClassVar

TORRENT_FIELDS = (
    "id",
    "name",
    "status",
    "percentDone",
    "rateDownload",
    "rateUpload",
    "uploadRatio",
    "totalSize",
    "downloadedEver",
    "uploadedEver",
    "peersConnected",
    "eta",
    "error",
    "errorString",
    "addedDate",
)

PEER_FIELDS = ("id", "peers")


# --- Requests ---


@dataclass(frozen=True)
class RPCRequest:
    """Base shape: a method name plus its argument payload."""

    method: ClassVar[str] = ""

    def arguments(self) -> dict[str, Any]:
        return {}


@dataclass(frozen=True)
class TorrentGetRequest(RPCRequest):
    method: ClassVar[str] = "torrent-get"

    fields: tuple[str, ...] = TORRENT_FIELDS
    ids: tuple[int, ...] | None = None

    def __post_init__(self):
        if not self.fields:
            raise ValueError("torrent-get requires at least one field")

    def arguments(self) -> dict[str, Any]:
        args: dict[str, Any] = {"fields": list(self.fields)}
        if self.ids is not None:
            args["ids"] = list(self.ids)
        return args


@dataclass(frozen=True)
class TorrentAddRequest(RPCRequest):
    """Add a torrent from a magnet/URL string or from raw .torrent bytes."""

    method: ClassVar[str] = "torrent-add"

    filename: str | None = None
    metainfo: bytes | None = None

    def __post_init__(self):
        if bool(self.filename) == bool(self.metainfo):
            raise ValueError("torrent-add takes exactly one of filename or metainfo")

    def arguments(self) -> dict[str, Any]:
        if self.metainfo:
            return {"metainfo": base64.b64encode(self.metainfo).decode("ascii")}
        return {"filename": self.filename}


@dataclass(frozen=True)
class _TorrentIdsRequest(RPCRequest):
    ids: tuple[int, ...] = ()

    def __post_init__(self):
        if not self.ids:
            raise ValueError(f"{self.method} requires at least one torrent id")

    def arguments(self) -> dict[str, Any]:
        return {"ids": list(self.ids)}


@dataclass(frozen=True)
class TorrentStartRequest(_TorrentIdsRequest):
    method: ClassVar[str] = "torrent-start"


@dataclass(frozen=True)
class TorrentStopRequest(_TorrentIdsRequest):
    method: ClassVar[str] = "torrent-stop"


@dataclass(frozen=True)
class TorrentRemoveRequest(_TorrentIdsRequest):
    method: ClassVar[str] = "torrent-remove"

    delete_local_data: bool = False

    def arguments(self) -> dict[str, Any]:
        return {"ids": list(self.ids), "delete-local-data": self.delete_local_data}


@dataclass(frozen=True)
class TorrentReannounceRequest(RPCRequest):
    """Reannounce the given torrents, or every torrent when ids is None."""

    method: ClassVar[str] = "torrent-reannounce"

    ids: tuple[int, ...] | None = None

    def arguments(self) -> dict[str, Any]:
        if self.ids is None:
            return {}
        return {"ids": list(self.ids)}


@dataclass(frozen=True)
class SessionStatsRequest(RPCRequest):
    method: ClassVar[str] = "session-stats"


@dataclass(frozen=True)
class PortTestRequest(RPCRequest):
    method: ClassVar[str] = "port-test"


@dataclass(frozen=True)
class FreeSpaceRequest(RPCRequest):
    method: ClassVar[str] = "free-space"

    path: str = ""

    def __post_init__(self):
        if not self.path:
            raise ValueError("free-space requires a path")

    def arguments(self) -> dict[str, Any]:
        return {"path": self.path}


# --- Responses ---


@dataclass
class Torrent:
    id: int
    name: str
    status: int = 0
    percent_done: float = 0.0
    rate_download: int = 0
    rate_upload: int = 0
    upload_ratio: float = 0.0
    total_size: int = 0
    downloaded_ever: int = 0
    uploaded_ever: int = 0
    peers_connected: int = 0
    eta: int = -1
    error: int = 0
    error_string: str = ""
    added_date: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "Torrent":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            status=data.get("status", 0),
            percent_done=data.get("percentDone", 0.0),
            rate_download=data.get("rateDownload", 0),
            rate_upload=data.get("rateUpload", 0),
            upload_ratio=data.get("uploadRatio", 0.0),
            total_size=data.get("totalSize", 0),
            downloaded_ever=data.get("downloadedEver", 0),
            uploaded_ever=data.get("uploadedEver", 0),
            peers_connected=data.get("peersConnected", 0),
            eta=data.get("eta", -1),
            error=data.get("error", 0),
            error_string=data.get("errorString", ""),
            added_date=data.get("addedDate", 0),
        )


@dataclass
class SessionStats:
    active_torrent_count: int = 0
    paused_torrent_count: int = 0
    torrent_count: int = 0
    download_speed: int = 0
    upload_speed: int = 0
    cumulative_uploaded_bytes: int = 0
    cumulative_downloaded_bytes: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "SessionStats":
        cumulative = data.get("cumulative-stats") or {}
        return cls(
            active_torrent_count=data.get("activeTorrentCount", 0),
            paused_torrent_count=data.get("pausedTorrentCount", 0),
            torrent_count=data.get("torrentCount", 0),
            download_speed=data.get("downloadSpeed", 0),
            upload_speed=data.get("uploadSpeed", 0),
            cumulative_uploaded_bytes=cumulative.get("uploadedBytes", 0),
            cumulative_downloaded_bytes=cumulative.get("downloadedBytes", 0),
        )


@dataclass
class Peer:
    address: str
    port: int = 0
    client_name: str = ""
    flag_str: str = ""
    progress: float = 0.0
    rate_to_client: int = 0
    rate_to_peer: int = 0
    client_is_choked: bool = False
    client_is_interested: bool = False
    peer_is_choked: bool = False
    peer_is_interested: bool = False
    is_downloading_from: bool = False
    is_uploading_to: bool = False
    is_encrypted: bool = False
    is_incoming: bool = False
    is_utp: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Peer":
        return cls(
            address=data.get("address", ""),
            port=data.get("port", 0),
            client_name=data.get("clientName", ""),
            flag_str=data.get("flagStr", ""),
            progress=data.get("progress", 0.0),
            rate_to_client=data.get("rateToClient", 0),
            rate_to_peer=data.get("rateToPeer", 0),
            client_is_choked=data.get("clientIsChoked", False),
            client_is_interested=data.get("clientIsInterested", False),
            peer_is_choked=data.get("peerIsChoked", False),
            peer_is_interested=data.get("peerIsInterested", False),
            is_downloading_from=data.get("isDownloadingFrom", False),
            is_uploading_to=data.get("isUploadingTo", False),
            is_encrypted=data.get("isEncrypted", False),
            is_incoming=data.get("isIncoming", False),
            is_utp=data.get("isUTP", False),
        )


@dataclass
class FreeSpace:
    path: str
    size_bytes: int = 0
    total_size: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "FreeSpace":
        return cls(
            path=data.get("path", ""),
            size_bytes=data.get("size-bytes", 0),
            total_size=data.get("total_size", 0),
        )


@dataclass
class TorrentAdded:
    """The daemon's answer to torrent-add."""

    id: int | None = None
    name: str = ""
    hash_string: str = ""
    duplicate: bool = False
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict) -> "TorrentAdded":
        duplicate = "torrent-duplicate" in data
        info = data.get("torrent-duplicate") if duplicate else data.get("torrent-added")
        info = info or {}
        return cls(
            id=info.get("id"),
            name=info.get("name", ""),
            hash_string=info.get("hashString", ""),
            duplicate=duplicate,
            raw=data,
        )
