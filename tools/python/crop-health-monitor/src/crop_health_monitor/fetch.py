"""
Crop Health Monitor — Remote Scene Fetcher
===========================================
Downloads scene GeoTIFFs listed by URL in a scene catalog into a local
cache directory.

This is the only I/O boundary where failures can be transient, so it is
the only place that retries: connection errors, timeouts and HTTP
429/5xx responses are retried with exponential backoff up to
``max_retries`` attempts.  Any other HTTP error fails at once.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from urllib.parse import urlparse

import requests

from shared.python.exceptions import SceneFetchError

logger = logging.getLogger("crophealth.fetch")

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def is_remote(location: str) -> bool:
    """``True`` for ``http://`` and ``https://`` locations."""
    return urlparse(str(location)).scheme in ("http", "https")


class SceneFetcher:
    """Fetch remote scenes with bounded retry and a file cache.

    Args:
        cache_dir: Directory where downloaded scenes are stored.
        max_retries: Total attempts per scene before giving up.
        backoff: Base delay in seconds; attempt *n* waits
                 ``backoff * 2 ** (n - 1)`` before retrying.
        timeout: Per-request timeout in seconds.
        session: Optional pre-configured :class:`requests.Session`.
    """

    def __init__(
        self,
        cache_dir: Path,
        max_retries: int = 3,
        backoff: float = 2.0,
        timeout: int = 30,
        session: requests.Session | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", "crop-health-monitor/1.0")

    def cache_path(self, url: str, scene_id: str | None = None) -> Path:
        name = Path(urlparse(url).path).name or "scene.tif"
        if scene_id:
            name = f"{scene_id}_{name}"
        return self.cache_dir / name

    def fetch(self, url: str, scene_id: str | None = None) -> Path:
        """Return a local path for *url*, downloading it if not cached.

        Raises:
            SceneFetchError: After ``max_retries`` transient failures, or on
                the first non-retryable HTTP error.
        """
        target = self.cache_path(url, scene_id)
        if target.exists():
            logger.debug("Cache hit for %s → %s", url, target)
            return target

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self._session.get(url, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = str(exc)
            else:
                if response.status_code == 200:
                    self._write(target, response.content)
                    logger.info("Fetched %s (%d bytes)", url, len(response.content))
                    return target
                last_error = f"HTTP {response.status_code}"
                if response.status_code not in _RETRYABLE_STATUS:
                    raise SceneFetchError(url, last_error, attempt)

            logger.warning("Fetch attempt %d/%d for %s failed: %s", attempt, self.max_retries, url, last_error)
            if attempt < self.max_retries:
                time.sleep(self.backoff * 2 ** (attempt - 1))

        raise SceneFetchError(url, last_error, self.max_retries)

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        partial = target.with_suffix(target.suffix + ".part")
        partial.write_bytes(content)
        partial.replace(target)
