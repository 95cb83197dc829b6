"""CoverArtArchive HTTP client implementation.

Hey future me - CoverArtArchive (CAA) is the remote tier of the art waterfall. It hosts
cover art keyed by MusicBrainz Release ID, free and without an API key. We only ever
need ONE thing from it: the pre-sized front cover thumbnail for a release.

Endpoint:
- GET /release/{mbid}/front-{size} redirects (307) to the image on archive.org.
  Sizes are 250, 500 and 1200.

GOTCHA: Not all releases have artwork! Many older/indie releases have no CAA coverage.
A 404 is the NORMAL "no art" answer, not an error.
"""

import asyncio
import logging
from typing import Any

import httpx

from localshelf.config import ArtworkSettings
from localshelf.domain.ports import ICoverArtClient

logger = logging.getLogger(__name__)

THUMBNAIL_SIZES = (250, 500, 1200)


class CoverArtArchiveClient(ICoverArtClient):
    """HTTP client for CoverArtArchive front covers.

    Usage:
        async with CoverArtArchiveClient(settings.artwork) as client:
            image = await client.fetch_front_cover(release_mbid, size=250)
    """

    # Hey future me - CAA doesn't have strict rate limits like MB,
    # but a scan that resolves art for a whole album shouldn't fire 12 requests at once.
    RATE_LIMIT_DELAY = 0.2

    def __init__(self, settings: ArtworkSettings | None = None) -> None:
        self.settings = settings or ArtworkSettings()
        self._client: httpx.AsyncClient | None = None
        self._last_request_time: float = 0.0
        self._rate_limit_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client.

        Follow redirects is important - CAA answers with 307s to the actual image URL.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.cover_art_base_url,
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Accept": "image/*",
                },
                timeout=self.settings.request_timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _rate_limited_request(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Make a rate-limited request to CoverArtArchive."""
        async with self._rate_limit_lock:
            current_time = asyncio.get_running_loop().time()
            time_since_last = current_time - self._last_request_time

            if time_since_last < self.RATE_LIMIT_DELAY:
                await asyncio.sleep(self.RATE_LIMIT_DELAY - time_since_last)

            client = await self._get_client()
            response = await client.request(method, url, **kwargs)

            self._last_request_time = asyncio.get_running_loop().time()

            return response

    async def fetch_front_cover(self, release_id: str, size: int = 250) -> bytes | None:
        """Download the front cover thumbnail for a release.

        Args:
            release_id: MusicBrainz Release ID
            size: Thumbnail size (250, 500 or 1200, anything else falls back to 250)

        Returns:
            Image bytes, or None if CAA has no art for this release.

        Raises:
            httpx.HTTPError: transport errors and non-404 error statuses.
                The art resolver turns these into "no remote art".
        """
        if size not in THUMBNAIL_SIZES:
            size = 250

        response = await self._rate_limited_request(
            "GET", f"/release/{release_id}/front-{size}"
        )

        if response.status_code == 404:
            logger.debug(f"No artwork found for release {release_id}")
            return None

        response.raise_for_status()
        return response.content

    async def __aenter__(self) -> "CoverArtArchiveClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
