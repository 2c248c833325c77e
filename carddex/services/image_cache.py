"""
Background image cache agent.

Mirrors already-known card image URLs into a longer-lived disk namespace
so collection views keep their artwork offline. The agent is independent
of the checksum and snapshot machinery: nothing it does affects sync.

Capacity is enforced at submission time by truncating the URL list to
MAX_CACHED_IMAGES. Stored images are never evicted to make room.

Fetch failures are logged and reported in the result, never raised.
"""

import asyncio
import hashlib
import logging
import os
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

import httpx

from carddex.clock import now_ms
from carddex.config import IMAGE_CACHE_MAX_AGE_MS, MAX_CACHED_IMAGES, settings
from carddex.models.offline import DataClass
from carddex.services.offline_cache import CacheUpdateResult, OfflineCacheManager

logger = logging.getLogger(__name__)

# Concurrent fetches per batch
MAX_CONCURRENT_FETCHES = 8


def extract_image_urls(cards: Iterable[Any]) -> list[str]:
    """
    Collect small and large image URLs from cached card data.

    Accepts OfflineCachedCard models or camelCase dicts.
    """
    urls: list[str] = []
    for card in cards:
        if isinstance(card, Mapping):
            small, large = card.get("imageSmall"), card.get("imageLarge")
        else:
            small, large = card.image_small, card.image_large
        if small:
            urls.append(small)
        if large:
            urls.append(large)
    return urls


class BackgroundCacheAgent:
    """Fetches images into a disk cache keyed by the SHA-256 of the URL."""

    def __init__(
        self,
        cache_dir: Path | None = None,
        timeout: float | None = None,
        max_images: int = MAX_CACHED_IMAGES,
        max_age_ms: int = IMAGE_CACHE_MAX_AGE_MS,
        clock: Callable[[], int] = now_ms,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.cache_dir = cache_dir or settings.image_cache_dir
        self.timeout = timeout if timeout is not None else settings.image_fetch_timeout
        self.max_images = max_images
        self.max_age_ms = max_age_ms
        self.clock = clock
        self._client = client
        self._tasks: set[asyncio.Task[CacheUpdateResult]] = set()

    def image_path(self, url: str) -> Path:
        return self.cache_dir / hashlib.sha256(url.encode("utf-8")).hexdigest()

    def _is_fresh(self, path: Path) -> bool:
        try:
            modified_ms = int(path.stat().st_mtime * 1000)
        except OSError:
            return False
        # Same boundary as the offline cache: equal to max age is still fresh
        return self.clock() - modified_ms <= self.max_age_ms

    def get_cached_image(self, url: str) -> bytes | None:
        """Cached bytes for a URL, or None if absent or older than the TTL."""
        path = self.image_path(url)
        if not self._is_fresh(path):
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            logger.debug("Failed to read cached image for %s: %s", url, e)
            return None

    async def cache_images(self, urls: Iterable[str]) -> CacheUpdateResult:
        """
        Fetch and store images, skipping ones already fresh on disk.

        The list is deduplicated and truncated to max_images before any
        fetch. items_cached counts every submitted URL that ends up in the
        cache, including ones that were already there.
        """
        submitted = list(dict.fromkeys(u for u in urls if u))
        if len(submitted) > self.max_images:
            logger.info(
                "Truncating image batch from %d to %d URLs", len(submitted), self.max_images
            )
            submitted = submitted[: self.max_images]

        pending = [url for url in submitted if not self._is_fresh(self.image_path(url))]
        already_cached = len(submitted) - len(pending)

        errors: list[str] = []
        if pending:
            if self._client is not None:
                errors = await self._fetch_all(self._client, pending)
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout,
                    follow_redirects=True,
                    headers={"User-Agent": "CardDex/1.0"},
                ) as client:
                    errors = await self._fetch_all(client, pending)

        result = CacheUpdateResult(
            success=not errors,
            items_cached=already_cached + len(pending) - len(errors),
            errors=errors,
            timestamp=self.clock(),
        )
        logger.info(
            "Image batch complete: %d cached, %d failed", result.items_cached, len(errors)
        )
        return result

    async def _fetch_all(self, client: httpx.AsyncClient, urls: list[str]) -> list[str]:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Image cache directory %s unusable: %s", self.cache_dir, e)
            return [f"Failed to cache {url}: {e}" for url in urls]
        semaphore = asyncio.Semaphore(MAX_CONCURRENT_FETCHES)

        async def fetch(url: str) -> str | None:
            async with semaphore:
                return await self._fetch_one(client, url)

        outcomes = await asyncio.gather(*(fetch(url) for url in urls))
        return [error for error in outcomes if error is not None]

    async def _fetch_one(self, client: httpx.AsyncClient, url: str) -> str | None:
        """Fetch one image to disk. Returns an error message instead of raising."""
        try:
            response = await client.get(url, timeout=self.timeout)
            response.raise_for_status()
            path = self.image_path(url)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_bytes(response.content)
            os.replace(tmp_path, path)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.warning("Failed to cache image %s: %s", url, e)
            return f"Failed to cache {url}: {e}"
        return None

    def schedule(self, urls: Iterable[str]) -> "asyncio.Task[CacheUpdateResult]":
        """
        Start caching in the background and return immediately.

        Must be called from a running event loop.
        """
        task = asyncio.create_task(self.cache_images(list(urls)))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for every scheduled batch to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def mirror_profile_images(
        self,
        manager: OfflineCacheManager,
        profile_id: str,
        cards: Iterable[Any],
    ) -> CacheUpdateResult:
        """
        Cache the images for a profile's cached cards and record the outcome.

        The URL list is stored under the images data class, whose freshness
        runs on the longer image max age, and the metadata image counter is
        updated.
        """
        urls = extract_image_urls(cards)[: self.max_images]
        result = await self.cache_images(urls)
        manager.save(profile_id, DataClass.IMAGES, urls)
        manager.record_images_cached(profile_id, result.items_cached)
        return result

    def clear(self) -> int:
        """Remove every cached image. Returns the number of files removed."""
        if not self.cache_dir.exists():
            return 0
        removed = 0
        for path in self.cache_dir.iterdir():
            if path.is_file():
                path.unlink(missing_ok=True)
                removed += 1
        logger.info("Cleared image cache (%d files)", removed)
        return removed
