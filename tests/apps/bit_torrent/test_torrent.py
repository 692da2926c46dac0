"""Tests for apps/bit_torrent/torrent.py and apps/bit_torrent/client.py."""

from __future__ import annotations

import base64

import bencodepy
import httpx
import pytest

from apps.bit_torrent.client import QBittorrentClient, create_bit_torrent_client, normalize_state
from apps.bit_torrent.torrent import (
    TorrentParseError,
    build_magnet_uri,
    is_http_url,
    is_magnet_uri,
    parse_magnet,
    parse_torrent,
)
from apps.hooks.configs import BitTorrentConfig
from common.exceptions import HttpRequestError, UnsupportedTypeError

INFO_HASH = "0123456789abcdef0123456789abcdef01234567"
QB_URL = "http://qb.local:8080"


class TestMagnet:
    """Magnet URI parsing and building."""

    def test_parse_hex(self):
        meta = parse_magnet(
            f"magnet:?xt=urn:btih:{INFO_HASH.upper()}&dn=My%20Show&xl=1024&tr=udp%3A%2F%2Ft1&tr=udp%3A%2F%2Ft2"
        )

        assert meta.info_hash == INFO_HASH
        assert meta.name == "My Show"
        assert meta.length == 1024
        assert meta.trackers == ["udp://t1", "udp://t2"]

    def test_parse_base32(self):
        encoded = base64.b32encode(bytes.fromhex(INFO_HASH)).decode()

        assert parse_magnet(f"magnet:?xt=urn:btih:{encoded}").info_hash == INFO_HASH

    @pytest.mark.parametrize("uri", ["magnet:?dn=nohash", "https://example.com/a.torrent", "magnet:?xt=urn:btih:zz"])
    def test_invalid(self, uri):
        with pytest.raises(TorrentParseError):
            parse_magnet(uri)

    def test_build_keeps_first_tracker(self):
        uri = build_magnet_uri(INFO_HASH, "My Show", 1024, ["udp://t1", "udp://t2"])

        assert uri == f"magnet:?xt=urn:btih:{INFO_HASH}&dn=My%20Show&xl=1024&tr=udp%3A%2F%2Ft1"

    def test_url_kinds(self):
        assert is_magnet_uri("MAGNET:?xt=urn:btih:abc")
        assert is_http_url("https://example.com")
        assert not is_http_url("ftp://example.com")
        assert not is_magnet_uri(None)


class TestTorrentFile:
    def test_multi_file_length_and_trackers(self):
        data = bencodepy.encode(
            {
                b"announce": b"https://t1/announce",
                b"announce-list": [[b"https://t1/announce"], [b"https://t2/announce"]],
                b"info": {
                    b"name": b"Season",
                    b"files": [{b"length": 100, b"path": [b"a"]}, {b"length": 50, b"path": [b"b"]}],
                    b"piece length": 16384,
                    b"pieces": b"x" * 20,
                },
            }
        )

        meta = parse_torrent(data)

        assert meta.name == "Season"
        assert meta.length == 150
        assert meta.trackers == ["https://t1/announce", "https://t2/announce"]
        assert len(meta.info_hash) == 40

    def test_garbage(self):
        with pytest.raises(TorrentParseError):
            parse_torrent(b"<html>not a torrent</html>")


class TestQBittorrentClient:
    """qBittorrent WebUI API v2 over MockTransport.

    使用 MockTransport 模拟 qBittorrent WebUI：登录、查询、删除。
    """

    def _client(self, http_stub) -> QBittorrentClient:
        http_stub.add(f"{QB_URL}/api/v2/auth/login", httpx.Response(200, text="Ok."))
        return QBittorrentClient(QB_URL, "admin", "secret", transport=httpx.MockTransport(http_stub))

    @pytest.mark.asyncio
    async def test_logs_in_once_and_reads_free_space(self, http_stub):
        http_stub.add(
            f"{QB_URL}/api/v2/sync/maindata", httpx.Response(200, json={"server_state": {"free_space_on_disk": 1234}})
        )
        client = self._client(http_stub)

        assert await client.get_free_space() == 1234
        assert await client.get_free_space() == 1234
        await client.close()

        assert len(http_stub.calls(f"{QB_URL}/api/v2/auth/login")) == 1

    @pytest.mark.asyncio
    async def test_get_torrent_with_trackers(self, http_stub):
        http_stub.add(
            f"{QB_URL}/api/v2/torrents/info",
            httpx.Response(200, json=[{"hash": INFO_HASH, "name": "Show", "total_size": 99, "state": "stalledUP"}]),
        )
        http_stub.add(
            f"{QB_URL}/api/v2/torrents/trackers",
            httpx.Response(200, json=[{"url": "** [DHT] **"}, {"url": "udp://tracker:80"}]),
        )
        client = self._client(http_stub)

        info = await client.get_torrent(INFO_HASH)
        await client.close()

        assert (info.name, info.total_size, info.state) == ("Show", 99, "seeding")
        assert info.trackers == ["udp://tracker:80"]

    @pytest.mark.asyncio
    async def test_missing_torrent_is_none(self, http_stub):
        http_stub.add(f"{QB_URL}/api/v2/torrents/info", httpx.Response(200, json=[]))
        client = self._client(http_stub)

        assert await client.get_torrent(INFO_HASH) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_relogin_on_403(self, http_stub):
        responses = iter([httpx.Response(403), httpx.Response(200, json=[])])
        http_stub.add(f"{QB_URL}/api/v2/torrents/info", lambda request: next(responses))
        client = self._client(http_stub)

        assert await client.list_torrents() == []
        await client.close()

        assert len(http_stub.calls(f"{QB_URL}/api/v2/auth/login")) == 2

    @pytest.mark.asyncio
    async def test_failed_login(self, http_stub):
        http_stub.add(f"{QB_URL}/api/v2/auth/login", httpx.Response(200, text="Fails."))
        client = QBittorrentClient(QB_URL, "admin", "wrong", transport=httpx.MockTransport(http_stub))

        with pytest.raises(HttpRequestError):
            await client.remove_torrent(INFO_HASH)
        await client.close()

    @pytest.mark.asyncio
    async def test_add_magnet_form(self, http_stub):
        http_stub.add(f"{QB_URL}/api/v2/torrents/add", httpx.Response(200, text="Ok."))
        client = self._client(http_stub)

        await client.add_magnet(f"magnet:?xt=urn:btih:{INFO_HASH}", save_path="/data")
        await client.close()

        body = http_stub.calls(f"{QB_URL}/api/v2/torrents/add")[0].content.decode()
        assert "savepath=%2Fdata" in body

    def test_factory(self):
        assert isinstance(create_bit_torrent_client(BitTorrentConfig(base_url=QB_URL)), QBittorrentClient)
        with pytest.raises(UnsupportedTypeError):
            create_bit_torrent_client(BitTorrentConfig(base_url=QB_URL, type="Transmission"))

    def test_normalize_state(self):
        assert normalize_state("pausedDL") == "paused"
        assert normalize_state("mystery") == "unknown"
        assert normalize_state(None) == "unknown"
