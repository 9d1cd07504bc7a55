"""Download and freshness tracking for the Scryfall oracle cards bulk file.

Only HTTPS URLs on Scryfall's own hosts are fetched, redirects included,
and the saved filename is taken from the download URL only when it is a
plain file name. Scryfall serves the file gzip-compressed; it is stored
decompressed so it can be streamed straight into the card store.
"""

import asyncio
import gzip
import json
import logging
import re
import shutil
import tempfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urljoin, urlparse

import httpx

from oracle_lens import __version__

logger = logging.getLogger(__name__)


ALLOWED_DOMAINS = frozenset({"api.scryfall.com", "data.scryfall.io"})

BULK_DATA_ENDPOINT = "https://api.scryfall.com/bulk-data"

DEFAULT_DATA_TYPE = "oracle_cards"

# Scryfall asks API clients to identify themselves
REQUEST_HEADERS = {
    "User-Agent": f"OracleLens/{__version__}",
    "Accept": "application/json;q=0.9,*/*;q=0.8",
}

MAX_REDIRECTS = 5
CHUNK_SIZE = 64 * 1024
GZIP_MAGIC = b"\x1f\x8b"

_SAFE_FILENAME = re.compile(r"^[a-zA-Z0-9_.-]+$")


def is_allowed_url(url: str) -> bool:
    """True for HTTPS URLs on a Scryfall host."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme == "https" and parsed.netloc in ALLOWED_DOMAINS


def is_safe_filename(filename: str) -> bool:
    """True if filename is a bare name that cannot escape the data directory."""
    if not filename or ".." in filename or filename[0] in "/\\":
        return False
    return _SAFE_FILENAME.match(filename) is not None


def bulk_filename(download_url: str, data_type: str) -> str:
    """Local filename for a bulk download, e.g. oracle-cards-20250109.json."""
    name = urlparse(download_url).path.rsplit("/", 1)[-1]
    return name if is_safe_filename(name) else f"{data_type}.json"


def decompress_if_gzipped(path: Path) -> bool:
    """Gunzip a file in place if it starts with the gzip magic number.

    Returns:
        True if the file was decompressed
    """
    with open(path, "rb") as f:
        if f.read(2) != GZIP_MAGIC:
            return False

    temp_path = path.with_name(path.name + ".tmp")
    try:
        with gzip.open(path, "rb") as src, open(temp_path, "wb") as dst:
            shutil.copyfileobj(src, dst)
        temp_path.replace(path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise

    logger.info("Decompressed %s", path.name)
    return True


@dataclass
class CacheMetadata:
    """Contents of metadata.json, describing the last downloaded bulk file."""

    type: str = DEFAULT_DATA_TYPE
    downloaded_at: str | None = None
    updated_at: str | None = None
    card_count: int = 0
    filename: str | None = None

    @classmethod
    def load(cls, path: Path) -> "CacheMetadata | None":
        """Read metadata, or None if the file is missing or unreadable."""
        try:
            with open(path) as f:
                raw = json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, OSError) as e:
            logger.debug("Ignoring unreadable metadata file: %s", e)
            return None

        if not isinstance(raw, dict):
            return None
        known = {k: v for k, v in raw.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def save(self, path: Path) -> None:
        """Write via a temp file and rename, so readers never see a partial file."""
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".metadata_", suffix=".tmp")
        try:
            with open(fd, "w") as f:
                json.dump(asdict(self), f)
            Path(temp_path).replace(path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise

    @property
    def downloaded_datetime(self) -> datetime | None:
        if not self.downloaded_at:
            return None
        try:
            return datetime.fromisoformat(self.downloaded_at)
        except ValueError:
            logger.debug("Invalid downloaded_at timestamp: %r", self.downloaded_at)
            return None


@dataclass
class DataStatus:
    """Status of the local data cache."""

    last_updated: datetime | None
    card_count: int
    version: str | None
    is_stale: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "card_count": self.card_count,
            "version": self.version,
            "stale": self.is_stale,
        }


class DataManager:
    """Keeps the oracle cards bulk file in a data directory up to date."""

    def __init__(self, data_dir: Path):
        """Initialize data manager.

        Args:
            data_dir: Directory for the bulk file and metadata.json
        """
        self.data_dir = data_dir
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.metadata_path = data_dir / "metadata.json"
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "DataManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            # Redirects are followed by hand in _send so each hop is checked
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, read=300.0),
                headers=REQUEST_HEADERS,
                follow_redirects=False,
            )
        return self._http_client

    async def _send(self, url: str, stream: bool = False) -> httpx.Response:
        """GET a URL, following redirects only to allowed hosts.

        Raises:
            ValueError: If a redirect leaves the allowed hosts or loops
        """
        client = self._client()

        for _ in range(MAX_REDIRECTS):
            response = await client.send(client.build_request("GET", url), stream=stream)
            if not response.is_redirect:
                return response

            if stream:
                await response.aclose()

            location = response.headers.get("location")
            if not location:
                raise ValueError("Redirect response missing location header")

            url = urljoin(url, location)
            if not is_allowed_url(url):
                raise ValueError(f"Redirect to non-allowed domain: {url}")

        raise ValueError(f"Too many redirects (max {MAX_REDIRECTS})")

    async def fetch_catalog(self) -> dict[str, Any]:
        """Fetch the bulk data catalog from Scryfall."""
        response = await self._send(BULK_DATA_ENDPOINT)
        response.raise_for_status()
        return response.json()

    async def get_bulk_data_info(self, data_type: str = DEFAULT_DATA_TYPE) -> dict[str, Any] | None:
        """Catalog entry for a bulk data type, or None if it is not listed."""
        catalog = await self.fetch_catalog()
        return next(
            (item for item in catalog.get("data", []) if item.get("type") == data_type),
            None,
        )

    async def _download_to(
        self,
        url: str,
        output_path: Path,
        progress_callback: Callable[[int, int], None] | None,
    ) -> None:
        response = await self._send(url, stream=True)
        try:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length", 0))
            downloaded = 0

            # Raw bytes: the body is gunzipped from disk afterwards
            with open(output_path, "wb") as f:
                async for chunk in response.aiter_raw(CHUNK_SIZE):
                    f.write(chunk)
                    downloaded += len(chunk)
                    if progress_callback:
                        progress_callback(downloaded, total)
        finally:
            await response.aclose()

        decompress_if_gzipped(output_path)

    async def download_bulk_data(
        self,
        data_type: str = DEFAULT_DATA_TYPE,
        progress_callback: Callable[[int, int], None] | None = None,
        max_retries: int = 3,
    ) -> Path:
        """Download a bulk data file, retrying with exponential backoff.

        The saved file is always plain JSON. On success metadata.json is
        rewritten with a card count of 0 until the file is imported.

        Args:
            data_type: Bulk data type from the catalog
            progress_callback: Called with (bytes downloaded, total bytes)
            max_retries: Retries after the first attempt

        Returns:
            Path to the downloaded file

        Raises:
            ValueError: If the type is not in the catalog or its URL is not allowed
            httpx.HTTPError: If every attempt fails with an HTTP error
            OSError: If every attempt fails and the last failure was local I/O
        """
        info = await self.get_bulk_data_info(data_type)
        if not info:
            raise ValueError(f"Unknown bulk data type: {data_type}")

        download_url = info.get("download_uri", "")
        if not is_allowed_url(download_url):
            raise ValueError(f"Invalid download URL: {download_url}")

        filename = bulk_filename(download_url, data_type)
        output_path = self.data_dir / filename
        attempts = max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            if last_error is not None:
                delay = 2 ** (attempt - 2)
                logger.warning(
                    "Download attempt %d/%d failed: %s. Retrying in %ds...",
                    attempt - 1, attempts, last_error, delay
                )
                await asyncio.sleep(delay)

            try:
                await self._download_to(download_url, output_path, progress_callback)
            except (httpx.HTTPError, OSError) as e:
                last_error = e
                output_path.unlink(missing_ok=True)
                continue

            if attempt > 1:
                logger.info("Download succeeded on attempt %d/%d", attempt, attempts)

            CacheMetadata(
                type=data_type,
                downloaded_at=datetime.now(timezone.utc).isoformat(),
                updated_at=info.get("updated_at"),
                filename=filename,
            ).save(self.metadata_path)
            return output_path

        message = f"Download failed after {attempts} attempts: {last_error}"
        # HTTPStatusError needs a request and response, so wrap rather than rebuild
        if isinstance(last_error, httpx.HTTPError):
            raise httpx.HTTPError(message) from last_error
        raise OSError(message) from last_error

    async def is_cache_stale(self) -> bool:
        """True if the cache is missing, older than Scryfall's file, or cannot be checked."""
        metadata = CacheMetadata.load(self.metadata_path)
        if metadata is None or not metadata.updated_at:
            return True

        try:
            info = await self.get_bulk_data_info(metadata.type)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug("Freshness check failed, assuming stale: %s", e)
            return True

        if not info or not info.get("updated_at"):
            return True
        return metadata.updated_at != info["updated_at"]

    async def get_status(self) -> DataStatus:
        """Get status of local data cache."""
        metadata = CacheMetadata.load(self.metadata_path)
        if metadata is None:
            return DataStatus(last_updated=None, card_count=0, version=None, is_stale=True)

        return DataStatus(
            last_updated=metadata.downloaded_datetime,
            card_count=metadata.card_count,
            version=metadata.updated_at,
            is_stale=await self.is_cache_stale(),
        )

    def update_card_count(self, count: int) -> None:
        """Record the number of imported cards in metadata.json."""
        metadata = CacheMetadata.load(self.metadata_path) or CacheMetadata()
        metadata.card_count = count
        metadata.save(self.metadata_path)
