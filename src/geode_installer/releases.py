"""Resolve and download the latest release assets from the GitHub releases API.

Outcomes are reported through three callback channels. on_progress fires
zero or more times; exactly one of on_error / on_finish fires once per
fetch. All callbacks run on the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import httpx
from pydantic import BaseModel, ValidationError

from geode_installer.config import Settings
from geode_installer.errors import (
    InstallerError,
    NetworkError,
    NoMatchingAsset,
    ParseError,
    Result,
)
from geode_installer.platforms import PlatformPaths

logger = logging.getLogger(__name__)

GEODE_PACKAGE_MARKER = ".geode"

AssetSelector = Callable[[str], bool]
ErrorFunc = Callable[[InstallerError], None]
ProgressFunc = Callable[[str, int], None]
FinishFunc = Callable[["DownloadedAsset"], None]


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a release."""

    name: str
    browser_download_url: str

    model_config = {"extra": "ignore"}


class Release(BaseModel):
    """The subset of GitHub's release object the installer needs."""

    tag_name: str
    assets: list[ReleaseAsset]

    model_config = {"extra": "ignore"}

    def select(self, selector: AssetSelector) -> ReleaseAsset | None:
        """First asset (in feed order) whose name satisfies selector."""
        for asset in self.assets:
            if selector(asset.name):
                return asset
        return None


@dataclass
class DownloadedAsset:
    """A release asset that has been saved to a local temporary file."""

    path: Path
    name: str
    tag: str


@dataclass
class DownloadCallbacks:
    """The error / progress / completion channels of a fetch."""

    on_error: ErrorFunc | None = None
    on_progress: ProgressFunc | None = None
    on_finish: FinishFunc | None = None

    def error(self, error: InstallerError) -> None:
        if self.on_error:
            self.on_error(error)

    def progress(self, label: str, percent: int) -> None:
        if self.on_progress:
            self.on_progress(label, percent)

    def finish(self, asset: DownloadedAsset) -> None:
        if self.on_finish:
            self.on_finish(asset)


class CancelToken:
    """Cancels an in-flight fetch. Safe to set from any thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self.cancelled:
            raise NetworkError("Web request cancelled")


def is_geode_package(name: str) -> bool:
    return GEODE_PACKAGE_MARKER in name


class ReleaseFetcher:
    """Fetches release metadata and streams the selected asset to disk."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or Settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.settings.request_timeout,
            headers=self.settings.request_headers,
            transport=self._transport,
        )

    def start_fetch(
        self,
        feed_url: str,
        selector: AssetSelector,
        callbacks: DownloadCallbacks,
        cancel: CancelToken | None = None,
        no_match_message: str | None = None,
    ) -> asyncio.Task:
        """Schedule a fetch on the running loop and return immediately."""
        return asyncio.get_running_loop().create_task(
            self.fetch_latest_asset(feed_url, selector, callbacks, cancel, no_match_message)
        )

    async def fetch_latest_asset(
        self,
        feed_url: str,
        selector: AssetSelector,
        callbacks: DownloadCallbacks | None = None,
        cancel: CancelToken | None = None,
        no_match_message: str | None = None,
    ) -> Result[DownloadedAsset]:
        """Resolve the latest release at feed_url and download the selected asset.

        Args:
            feed_url: GitHub "latest release" API URL
            selector: Predicate over asset names; the first match wins
            callbacks: Error / progress / completion channels
            cancel: Optional token to abort the fetch
            no_match_message: Message used when no asset matches

        Returns:
            Result carrying the downloaded asset, mirroring the callback outcome
        """
        callbacks = callbacks or DownloadCallbacks()
        cancel = cancel or CancelToken()
        try:
            asset = await self._fetch(feed_url, selector, callbacks, cancel, no_match_message)
        except InstallerError as e:
            logger.warning("Fetching %s failed: %s", feed_url, e)
            callbacks.error(e)
            return Result.failure(e)
        except asyncio.CancelledError:
            callbacks.error(NetworkError("Web request cancelled"))
            raise

        logger.info("Downloaded %s (%s) to %s", asset.name, asset.tag, asset.path)
        callbacks.finish(asset)
        return Result.success(asset)

    async def download_loader(
        self,
        platform: PlatformPaths,
        callbacks: DownloadCallbacks | None = None,
        cancel: CancelToken | None = None,
    ) -> Result[DownloadedAsset]:
        """Download the loader build for platform."""
        return await self.fetch_latest_asset(
            self.settings.loader_feed_url,
            platform.loader_asset_selector,
            callbacks,
            cancel,
            no_match_message=f"No release asset for {platform.name} found",
        )

    async def download_api(
        self,
        callbacks: DownloadCallbacks | None = None,
        cancel: CancelToken | None = None,
    ) -> Result[DownloadedAsset]:
        """Download the API .geode package."""
        return await self.fetch_latest_asset(
            self.settings.api_feed_url,
            is_geode_package,
            callbacks,
            cancel,
            no_match_message="No .geode file release asset found",
        )

    async def _fetch(
        self,
        feed_url: str,
        selector: AssetSelector,
        callbacks: DownloadCallbacks,
        cancel: CancelToken,
        no_match_message: str | None,
    ) -> DownloadedAsset:
        async with self._client() as client:
            release = await self._get_release(client, feed_url, cancel)
            callbacks.progress(f"Downloading version {release.tag_name}", 0)

            asset = release.select(selector)
            if asset is None:
                raise NoMatchingAsset(no_match_message or f"No matching release asset in {feed_url}")

            path = await self._download(client, asset, callbacks, cancel)
            return DownloadedAsset(path=path, name=asset.name, tag=release.tag_name)

    async def _get_release(self, client: httpx.AsyncClient, url: str, cancel: CancelToken) -> Release:
        _check_url(url)
        cancel.check()
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Web request failed: {_describe(e)}") from e
        cancel.check()
        _check_status(response)

        try:
            return Release.model_validate_json(response.content)
        except ValidationError as e:
            raise ParseError(f"Unable to parse JSON: {e}") from e

    async def _download(
        self,
        client: httpx.AsyncClient,
        asset: ReleaseAsset,
        callbacks: DownloadCallbacks,
        cancel: CancelToken,
    ) -> Path:
        _check_url(asset.browser_download_url)
        callbacks.progress("Waiting", 0)

        download_dir = self.settings.download_dir
        try:
            if download_dir is not None:
                download_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix="geode-", suffix=f"-{Path(asset.name).name}", dir=download_dir)
            os.close(fd)
        except OSError as e:
            raise NetworkError(f"Unable to create download file: {e}") from e
        path = Path(tmp_name)

        try:
            await self._stream_to(client, asset.browser_download_url, path, callbacks, cancel)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return path

    async def _stream_to(
        self,
        client: httpx.AsyncClient,
        url: str,
        path: Path,
        callbacks: DownloadCallbacks,
        cancel: CancelToken,
    ) -> None:
        cancel.check()
        try:
            async with client.stream("GET", url) as response:
                _check_status(response)

                expected = _content_length(response)
                received = 0
                last_percent = 0

                async with aiofiles.open(path, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        cancel.check()
                        try:
                            await f.write(chunk)
                        except OSError as e:
                            raise NetworkError(f"Unable to write download to {path}: {e}") from e
                        received += len(chunk)

                        if expected <= 0:
                            callbacks.progress("Beginning download", 0)
                            continue
                        percent = min(100, int(received / expected * 100))
                        last_percent = max(last_percent, percent)
                        callbacks.progress("Downloading", last_percent)
        except httpx.HTTPError as e:
            raise NetworkError(f"Web request failed: {_describe(e)}") from e


def _check_url(url: str) -> None:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        logger.debug("Invalid URL %r: %s", url, e)
        raise NetworkError("Unable to create web request") from e
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise NetworkError("Unable to create web request")


def _content_length(response: httpx.Response) -> int:
    """Declared body size, or 0 when the header is absent or unusable."""
    try:
        return max(0, int(response.headers.get("content-length") or 0))
    except ValueError:
        logger.debug("Ignoring Content-Length %r", response.headers.get("content-length"))
        return 0


def _check_status(response: httpx.Response) -> None:
    if response.status_code in (401, 403):
        raise NetworkError("Unauthorized to do web request")
    if response.status_code != 200:
        raise NetworkError(f"Web request returned {response.status_code}")


def _describe(error: Exception) -> str:
    return str(error) or type(error).__name__
