"""Tests for the Transmission RPC client."""

import base64
import json

import httpx
import pytest

from torrentfeed.transmission import (
    SESSION_HEADER,
    ProtocolError,
    SessionError,
    TransmissionClient,
    TransportError,
)

RPC_URL = "http://daemon:9091/transmission/rpc"


class FakeDaemon:
    """Records requests and answers from a queue of (status, headers, body)."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, headers, body = self.responses.pop(0)
        return httpx.Response(status, headers=headers, json=body)

    def payload(self, n: int) -> dict:
        return json.loads(self.requests[n].content)


def ok(arguments=None):
    return (200, {}, {"result": "success", "arguments": arguments or {}})


def conflict(session_id="abc123"):
    return (409, {SESSION_HEADER: session_id}, {})


def make_client(daemon, **kwargs) -> TransmissionClient:
    return TransmissionClient(RPC_URL, transport=httpx.MockTransport(daemon), **kwargs)


class TestSession:
    def test_refresh_then_cached_token(self):
        daemon = FakeDaemon([conflict("abc123"), ok(), ok()])
        client = make_client(daemon)

        client.execute("session-stats")
        assert len(daemon.requests) == 2
        assert SESSION_HEADER not in daemon.requests[0].headers
        assert daemon.requests[1].headers[SESSION_HEADER] == "abc123"

        client.execute("session-stats")
        assert len(daemon.requests) == 3
        assert daemon.requests[2].headers[SESSION_HEADER] == "abc123"
        assert not hasattr(client, "session_id")

    def test_second_rejection_is_an_error(self):
        daemon = FakeDaemon([conflict("one"), conflict("two")])
        client = make_client(daemon)

        with pytest.raises(SessionError):
            client.execute("session-stats")

        assert len(daemon.requests) == 2

    def test_conflict_without_header(self):
        daemon = FakeDaemon([(409, {}, {})])
        client = make_client(daemon)

        with pytest.raises(SessionError):
            client.execute("session-stats")

    def test_expired_session_refreshed(self):
        daemon = FakeDaemon([conflict("first"), ok(), conflict("second"), ok()])
        client = make_client(daemon)

        client.execute("session-stats")
        client.execute("session-stats")

        assert daemon.requests[3].headers[SESSION_HEADER] == "second"

    def test_basic_auth_attached(self):
        daemon = FakeDaemon([ok()])
        client = make_client(daemon, username="transmission", password="secret")

        client.execute("session-stats")

        expected = base64.b64encode(b"transmission:secret").decode()
        assert daemon.requests[0].headers["Authorization"] == f"Basic {expected}"

    def test_no_auth_without_username(self):
        daemon = FakeDaemon([ok()])
        client = make_client(daemon)

        client.execute("session-stats")

        assert "Authorization" not in daemon.requests[0].headers


class TestErrors:
    def test_http_error_status(self):
        daemon = FakeDaemon([(401, {}, {})])
        client = make_client(daemon)

        with pytest.raises(TransportError) as exc_info:
            client.execute("session-stats")
        assert exc_info.value.status_code == 401

    def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = TransmissionClient(RPC_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(TransportError):
            client.execute("session-stats")

    def test_unusable_url(self):
        daemon = FakeDaemon([ok()])
        client = TransmissionClient(
            "http://daemon:9091/transmission/rpc\x00",
            transport=httpx.MockTransport(daemon),
        )

        with pytest.raises(TransportError):
            client.execute("session-stats")
        assert daemon.requests == []

    def test_rpc_failure_result(self):
        daemon = FakeDaemon([(200, {}, {"result": "invalid or corrupt torrent file"})])
        client = make_client(daemon)

        with pytest.raises(ProtocolError, match="invalid or corrupt torrent file"):
            client.execute("torrent-add", {"filename": "x"})

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>not json</html>")

        client = TransmissionClient(RPC_URL, transport=httpx.MockTransport(handler))

        with pytest.raises(ProtocolError, match="invalid JSON"):
            client.execute("session-stats")


class TestOperations:
    def test_get_torrents_projection(self):
        daemon = FakeDaemon([
            ok({"torrents": [{"id": 1, "name": "ubuntu.iso", "percentDone": 0.5, "status": 4}]})
        ])
        client = make_client(daemon)

        torrents = client.get_torrents()

        payload = daemon.payload(0)
        assert payload["method"] == "torrent-get"
        assert "percentDone" in payload["arguments"]["fields"]
        assert torrents[0].name == "ubuntu.iso"
        assert torrents[0].percent_done == 0.5

    def test_add_torrent_by_magnet(self):
        daemon = FakeDaemon([
            ok({"torrent-added": {"id": 7, "name": "ubuntu", "hashString": "abc"}})
        ])
        client = make_client(daemon)

        added = client.add_torrent("magnet:?xt=urn:btih:abc")

        assert daemon.payload(0) == {
            "method": "torrent-add",
            "arguments": {"filename": "magnet:?xt=urn:btih:abc"},
        }
        assert added.id == 7
        assert added.duplicate is False

    def test_add_torrent_by_metainfo(self):
        daemon = FakeDaemon([ok({"torrent-duplicate": {"id": 3, "name": "dup"}})])
        client = make_client(daemon)

        added = client.add_torrent(metainfo=b"d8:announce0:e")

        assert daemon.payload(0)["arguments"] == {
            "metainfo": base64.b64encode(b"d8:announce0:e").decode()
        }
        assert added.duplicate is True

    @pytest.mark.parametrize(
        "kwargs", [{}, {"filename": "magnet:?xt=1", "metainfo": b"data"}]
    )
    def test_add_torrent_requires_exactly_one_source(self, kwargs):
        daemon = FakeDaemon([])
        client = make_client(daemon)

        with pytest.raises(ValueError):
            client.add_torrent(**kwargs)

        assert daemon.requests == []

    def test_remove_torrent_with_data(self):
        daemon = FakeDaemon([ok()])
        client = make_client(daemon)

        client.remove_torrent(5, delete_data=True)

        assert daemon.payload(0)["arguments"] == {"ids": [5], "delete-local-data": True}

    def test_start_stop(self):
        daemon = FakeDaemon([ok(), ok()])
        client = make_client(daemon)

        client.start_torrent(1)
        client.stop_torrent(2)

        assert daemon.payload(0) == {"method": "torrent-start", "arguments": {"ids": [1]}}
        assert daemon.payload(1) == {"method": "torrent-stop", "arguments": {"ids": [2]}}

    def test_reannounce_one_and_all(self):
        daemon = FakeDaemon([ok(), ok()])
        client = make_client(daemon)

        client.reannounce_torrent(9)
        client.reannounce_all()

        assert daemon.payload(0)["arguments"] == {"ids": [9]}
        assert daemon.payload(1) == {"method": "torrent-reannounce"}

    def test_session_stats(self):
        daemon = FakeDaemon([
            ok({
                "activeTorrentCount": 2,
                "torrentCount": 3,
                "downloadSpeed": 1024,
                "cumulative-stats": {"downloadedBytes": 10, "uploadedBytes": 20},
            })
        ])
        client = make_client(daemon)

        stats = client.get_session_stats()

        assert stats.active_torrent_count == 2
        assert stats.torrent_count == 3
        assert stats.cumulative_uploaded_bytes == 20

    def test_port_test(self):
        daemon = FakeDaemon([ok({"port-is-open": True})])

        assert make_client(daemon).test_port() is True

    def test_free_space(self):
        daemon = FakeDaemon([ok({"path": "/data", "size-bytes": 4096})])
        client = make_client(daemon)

        space = client.get_free_space("/data")

        assert daemon.payload(0)["arguments"] == {"path": "/data"}
        assert space.size_bytes == 4096

    def test_get_peers(self):
        daemon = FakeDaemon([
            ok({"torrents": [{"id": 1, "peers": [{"address": "10.0.0.2", "port": 51413, "isUTP": True}]}]})
        ])
        client = make_client(daemon)

        peers = client.get_peers(1)

        payload = daemon.payload(0)
        assert payload["arguments"] == {"fields": ["id", "peers"], "ids": [1]}
        assert peers[0].address == "10.0.0.2"
        assert peers[0].is_utp is True

    def test_get_peers_unknown_torrent(self):
        daemon = FakeDaemon([ok({"torrents": []})])

        assert make_client(daemon).get_peers(99) == []
