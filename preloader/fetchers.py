"""Resource fetchers, one per resource kind, and the registry that owns them."""

import abc
import asyncio
import io
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import unquote, urlparse

import aiohttp
from PIL import Image, UnidentifiedImageError

from .errors import FetchError, FetchTimeoutError, UnsupportedKindError
from .models import ResourceDescriptor, ResourceKind


class ResourceFetcher(abc.ABC):
    """Fetches one resource kind and enforces the descriptor's timeout."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        """Fetch a resource, failing with FetchTimeoutError past its timeout."""
        try:
            return await asyncio.wait_for(self._fetch(descriptor), descriptor.timeout)
        except asyncio.TimeoutError:
            raise FetchTimeoutError(descriptor.url, descriptor.timeout)

    @abc.abstractmethod
    async def _fetch(self, descriptor: ResourceDescriptor) -> Any:
        ...


class HTTPFetcher(ResourceFetcher):
    """Base for fetchers that read bytes from an HTTP(S) or local file locator."""

    def __init__(
        self,
        session_provider,
        headers: Optional[Dict[str, str]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize fetcher.

        Args:
            session_provider: Zero-argument callable returning the shared
                aiohttp session
            headers: Default HTTP headers for requests
            logger: Optional logger instance
        """
        super().__init__(logger)
        self._session_provider = session_provider
        self.headers = headers or {}

    async def download(self, url: str) -> bytes:
        """Download raw bytes for a locator."""
        local_path = _local_path(url)
        if local_path is not None:
            try:
                return await asyncio.to_thread(local_path.read_bytes)
            except OSError as e:
                raise FetchError(f"Failed to read {url}: {e}")

        session = self._session_provider()
        try:
            async with session.get(url, headers=self.headers) as response:
                if response.status >= 400:
                    raise FetchError(f"HTTP {response.status}", status=response.status)
                return await response.read()
        except aiohttp.ClientError as e:
            self.logger.debug(f"Transport error for {url}: {e}")
            raise FetchError(f"Failed to fetch {url}: {e}")

    async def _fetch(self, descriptor: ResourceDescriptor) -> Any:
        data = await self.download(descriptor.url)
        return await self.decode(descriptor, data)

    async def decode(self, descriptor: ResourceDescriptor, data: bytes) -> Any:
        return data


class JSONFetcher(HTTPFetcher):
    async def decode(self, descriptor: ResourceDescriptor, data: bytes) -> Any:
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise FetchError(f"Invalid JSON from {descriptor.url}: {e}")


class TextFetcher(HTTPFetcher):
    async def decode(self, descriptor: ResourceDescriptor, data: bytes) -> str:
        return data.decode("utf-8", errors="replace")


class ImageFetcher(HTTPFetcher):
    """Downloads an image and verifies it decodes."""

    async def decode(self, descriptor: ResourceDescriptor, data: bytes) -> Image.Image:
        return await asyncio.to_thread(self._decode, descriptor.url, data)

    @staticmethod
    def _decode(url: str, data: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise FetchError(f"Image failed to load from {url}: {e}")
        return image


class ScriptFetcher(HTTPFetcher):
    """Downloads Python source and compiles it. The code object is not executed."""

    async def decode(self, descriptor: ResourceDescriptor, data: bytes):
        try:
            source = data.decode("utf-8")
            return compile(source, descriptor.url, "exec")
        except (UnicodeDecodeError, SyntaxError, ValueError) as e:
            raise FetchError(f"Script failed to load from {descriptor.url}: {e}")


class FetcherRegistry:
    """Maps resource kinds to fetchers and owns the shared HTTP session.

    Use as an async context manager so the session is closed after the run.
    """

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        connector: Optional[aiohttp.BaseConnector] = None,
        logger: Optional[logging.Logger] = None,
        register_defaults: bool = True,
    ):
        self.headers = headers or {}
        self.timeout = timeout or aiohttp.ClientTimeout(total=None)
        self.connector = connector
        self.logger = logger or logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None
        self._fetchers: Dict[str, ResourceFetcher] = {}

        if register_defaults:
            self.register(ResourceKind.JSON, JSONFetcher(self._get_session, self.headers))
            self.register(ResourceKind.TEXT, TextFetcher(self._get_session, self.headers))
            self.register(ResourceKind.IMAGE, ImageFetcher(self._get_session, self.headers))
            self.register(ResourceKind.SCRIPT, ScriptFetcher(self._get_session, self.headers))

    async def __aenter__(self) -> "FetcherRegistry":
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        # Created lazily inside the running loop.
        if self._session is None or self._session.closed:
            connector_kwargs = {}
            if self.connector:
                connector_kwargs["connector"] = self.connector
            self._session = aiohttp.ClientSession(timeout=self.timeout, **connector_kwargs)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            try:
                await self._session.close()
            except Exception as e:
                self.logger.warning(f"Error closing session: {e}")
        self._session = None

    def register(self, kind, fetcher: ResourceFetcher) -> None:
        if isinstance(kind, ResourceKind):
            kind = kind.value
        self._fetchers[str(kind).lower()] = fetcher

    def get(self, kind: str) -> ResourceFetcher:
        try:
            return self._fetchers[kind]
        except KeyError:
            raise UnsupportedKindError(kind)

    def supports(self, kind: str) -> bool:
        return kind in self._fetchers

    @property
    def kinds(self):
        return sorted(self._fetchers)

    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        return await self.get(descriptor.kind).fetch(descriptor)


def _local_path(url: str) -> Optional[Path]:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if not parsed.scheme:
        return Path(url)
    return None
