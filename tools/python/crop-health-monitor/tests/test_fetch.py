"""
Tests for the Remote Scene Fetcher
===================================
All HTTP calls are mocked via the ``responses`` library; no real network
requests are made.  ``time.sleep`` is patched so retries run instantly.

Test classes:
    TestIsRemote
    TestSceneFetcher
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest
import requests
import responses as rsps_lib

from crop_health_monitor.fetch import SceneFetcher, is_remote
from shared.python.exceptions import SceneFetchError

URL = "https://example.org/scenes/T33_20240601.tif"


def _fetcher(tmp_path: Path) -> SceneFetcher:
    return SceneFetcher(tmp_path / "cache", max_retries=3, backoff=1.0)


class TestIsRemote:

    @pytest.mark.parametrize("location, expected", [
        ("https://example.org/a.tif", True),
        ("http://example.org/a.tif", True),
        ("scenes/a.tif", False),
        ("/data/a.tif", False),
    ])
    def test_scheme_detection(self, location: str, expected: bool) -> None:
        assert is_remote(location) is expected


class TestSceneFetcher:

    @rsps_lib.activate
    @patch("crop_health_monitor.fetch.time.sleep")
    def test_success_writes_cache_file(self, mock_sleep: MagicMock, tmp_path: Path) -> None:
        rsps_lib.add(rsps_lib.GET, URL, body=b"GTIFF", status=200)

        path = _fetcher(tmp_path).fetch(URL, scene_id="S1")

        assert path == tmp_path / "cache" / "S1_T33_20240601.tif"
        assert path.read_bytes() == b"GTIFF"
        assert len(rsps_lib.calls) == 1
        assert rsps_lib.calls[0].request.headers["User-Agent"] == "crop-health-monitor/1.0"
        mock_sleep.assert_not_called()

    @rsps_lib.activate
    @patch("crop_health_monitor.fetch.time.sleep")
    def test_retries_transient_errors_with_backoff(self, mock_sleep: MagicMock, tmp_path: Path) -> None:
        rsps_lib.add(rsps_lib.GET, URL, status=503)
        rsps_lib.add(rsps_lib.GET, URL, body=requests.ConnectionError("connection reset"))
        rsps_lib.add(rsps_lib.GET, URL, body=b"ok", status=200)

        path = _fetcher(tmp_path).fetch(URL)

        assert path.read_bytes() == b"ok"
        assert len(rsps_lib.calls) == 3
        assert mock_sleep.call_args_list == [call(1.0), call(2.0)]

    @rsps_lib.activate
    @patch("crop_health_monitor.fetch.time.sleep")
    def test_timeout_is_retried(self, mock_sleep: MagicMock, tmp_path: Path) -> None:
        rsps_lib.add(rsps_lib.GET, URL, body=requests.Timeout("read timed out"))
        rsps_lib.add(rsps_lib.GET, URL, body=b"ok", status=200)

        assert _fetcher(tmp_path).fetch(URL).read_bytes() == b"ok"
        assert len(rsps_lib.calls) == 2

    @rsps_lib.activate
    @patch("crop_health_monitor.fetch.time.sleep")
    def test_gives_up_after_max_retries(self, mock_sleep: MagicMock, tmp_path: Path) -> None:
        rsps_lib.add(rsps_lib.GET, URL, status=429)
        rsps_lib.add(rsps_lib.GET, URL, status=502)
        rsps_lib.add(rsps_lib.GET, URL, status=500)
        fetcher = _fetcher(tmp_path)

        with pytest.raises(SceneFetchError) as exc_info:
            fetcher.fetch(URL)

        assert exc_info.value.attempts == 3
        assert "HTTP 500" in exc_info.value.reason
        assert len(rsps_lib.calls) == 3
        assert not fetcher.cache_path(URL).exists()

    @rsps_lib.activate
    @patch("crop_health_monitor.fetch.time.sleep")
    def test_connection_errors_exhaust_retries(self, mock_sleep: MagicMock, tmp_path: Path) -> None:
        rsps_lib.add(rsps_lib.GET, URL, body=requests.ConnectionError("no route to host"))

        with pytest.raises(SceneFetchError, match="no route to host"):
            _fetcher(tmp_path).fetch(URL)

        assert len(rsps_lib.calls) == 3
        assert mock_sleep.call_count == 2

    @rsps_lib.activate
    @patch("crop_health_monitor.fetch.time.sleep")
    def test_client_error_fails_immediately(self, mock_sleep: MagicMock, tmp_path: Path) -> None:
        rsps_lib.add(rsps_lib.GET, URL, status=404)

        with pytest.raises(SceneFetchError, match="HTTP 404"):
            _fetcher(tmp_path).fetch(URL)

        assert len(rsps_lib.calls) == 1
        mock_sleep.assert_not_called()

    @rsps_lib.activate
    def test_cached_scene_not_downloaded_again(self, tmp_path: Path) -> None:
        fetcher = _fetcher(tmp_path)
        cached = fetcher.cache_path(URL, "S1")
        cached.parent.mkdir(parents=True)
        cached.write_bytes(b"cached")

        assert fetcher.fetch(URL, scene_id="S1") == cached
        assert len(rsps_lib.calls) == 0
