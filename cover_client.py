"""
cover_client.py — Spotify CDN cover-art resolver for the render_api.

Provides CoverSize, the pure URL rewrites, CoverClient, RequestsTransport and
the module-level resolve_cover_url() / download_cover() helpers.
Cover bytes are returned in memory, nothing is written to disk.

i.scdn.co encodes the image size as a 16-char code inside the image id:
    https://i.scdn.co/image/ab67616d00001e02<hash>   300x300
    https://i.scdn.co/image/ab67616d0000b273<hash>   640x640
    https://i.scdn.co/image/ab67616d000082c1<hash>   ~2000x2000

Resolution flow:
  1. 300 → 640 is always safe (every album has a 640 asset), pure string swap.
  2. 640 → max only if requested, and only after a HEAD probe returns 200
     (not every release has a max-resolution asset). Probe errors fall back
     to the 640 URL silently.

Typical usage inside app.py:
    import cover_client

    data = await asyncio.get_event_loop().run_in_executor(
        None, cover_client.download_cover, image_url, True
    )
"""

from __future__ import annotations

import logging
import os
import threading
from enum import Enum
from functools import total_ordering
from typing import Optional

import requests
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# i.scdn.co rejects requests without a browser-like User-Agent
COVER_USER_AGENT = os.getenv("COVER_USER_AGENT", _UA)
COVER_TIMEOUT    = float(os.getenv("COVER_TIMEOUT", "15"))

_CHUNK_SIZE = 65536


# ---------------------------------------------------------------------------
# Size codes
# ---------------------------------------------------------------------------

@total_ordering
class CoverSize(Enum):
    """Spotify image size tiers, ordered SMALL < MEDIUM < MAX by rank."""

    #        code                pixels  rank
    SMALL  = ("ab67616d00001e02", 300,   0)
    MEDIUM = ("ab67616d0000b273", 640,   1)
    MAX    = ("ab67616d000082c1", 2000,  2)   # ~2000x2000, not always present

    def __init__(self, code: str, pixels: int, rank: int):
        self.code   = code
        self.pixels = pixels
        self.rank   = rank

    def __lt__(self, other):
        if not isinstance(other, CoverSize):
            return NotImplemented
        return self.rank < other.rank


# ---------------------------------------------------------------------------
# Pure URL rewrites (no network)
# ---------------------------------------------------------------------------

def compute_candidate_url(url: str, current: CoverSize, target: CoverSize) -> str:
    """
    Swap the first occurrence of *current*'s size code for *target*'s.

    URLs that don't carry *current*'s code are returned unchanged.
    """
    if current.code in url:
        return url.replace(current.code, target.code, 1)
    return url


def upgrade_to_medium(url: str) -> str:
    """300x300 → 640x640. Always safe, no probe needed."""
    return compute_candidate_url(url, CoverSize.SMALL, CoverSize.MEDIUM)


def max_candidate_url(url: str) -> str:
    """640x640 → max candidate. Must be probed before it is trusted."""
    return compute_candidate_url(url, CoverSize.MEDIUM, CoverSize.MAX)


def size_of(url: str) -> Optional[CoverSize]:
    """Return the size tier encoded in *url*, or None if it carries no known code."""
    for size in CoverSize:
        if size.code in url:
            return size
    return None


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class CoverError(RuntimeError):
    """Base class for cover download failures."""


class NoCoverURL(CoverError):
    pass


class CoverRequestError(CoverError):
    pass


class CoverTransportError(CoverError):
    pass


class CoverHTTPError(CoverError):
    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"download failed: HTTP {status_code}")


class CoverReadError(CoverError):
    pass


# ---------------------------------------------------------------------------
# RequestsTransport
# ---------------------------------------------------------------------------

class RequestsTransport:
    """
    requests.Session wrapper used by CoverClient.

    Attaches the User-Agent the CDN requires and enforces *timeout* on every
    request. Request construction and sending are separate steps so callers
    can tell a malformed URL apart from a network failure.
    """

    def __init__(self, timeout: float = COVER_TIMEOUT,
                 user_agent: str = COVER_USER_AGENT,
                 session: Optional[requests.Session] = None):
        self.timeout  = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})

    def prepare(self, method: str, url: str) -> requests.PreparedRequest:
        return self._session.prepare_request(requests.Request(method, url))

    def send(self, request: requests.PreparedRequest,
             stream: bool = False) -> requests.Response:
        return self._session.send(request, timeout=self.timeout, stream=stream)

    def close(self):
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


# ---------------------------------------------------------------------------
# CoverClient
# ---------------------------------------------------------------------------

class CoverClient:
    """
    Resolves the best available cover URL and downloads it into memory.

    *transport* must provide prepare(method, url) and send(request, stream)
    with RequestsTransport's semantics.
    """

    def __init__(self, transport=None):
        self.transport = transport or RequestsTransport()

    # ---- resolution --------------------------------------------------------

    def probe_availability(self, url: str) -> bool:
        """HEAD *url*; True only on HTTP 200. Never raises."""
        try:
            request = self.transport.prepare("HEAD", url)
            resp    = self.transport.send(request)
        except Exception as exc:
            logger.debug(f"Cover probe failed for {url}: {exc}")
            return False
        try:
            return resp.status_code == 200
        finally:
            resp.close()

    def upgrade_to_max(self, url: str) -> str:
        """
        640x640 → max resolution when the CDN actually has it.

        Anything that is not a 640 URL, or a probe that fails for any
        reason, returns *url* unchanged.
        """
        if CoverSize.MEDIUM.code not in url:
            return url

        candidate = max_candidate_url(url)
        if self.probe_availability(candidate):
            return candidate
        logger.debug(f"Max resolution unavailable, keeping 640x640: {url}")
        return url

    def resolve(self, url: str, max_quality: bool = False) -> str:
        """
        Best URL for the requested quality.

        Never raises. Note max_quality=True costs one HEAD request.
        """
        if not url:
            return ""

        result = upgrade_to_medium(url)
        if max_quality:
            result = self.upgrade_to_max(result)
        return result

    # ---- download ----------------------------------------------------------

    def download(self, url: str, max_quality: bool = False) -> bytes:
        """
        Resolve *url* and return the full image body.

        Raises a CoverError subclass on any failure; nothing is retried.
        """
        if not url:
            raise NoCoverURL("no URL provided")

        logger.info(f"🖼  Downloading cover from: {url}")

        medium_url = upgrade_to_medium(url)
        if medium_url != url:
            logger.info(f"   Upgraded 300x300 to 640x640: {medium_url}")

        download_url = self.resolve(url, max_quality)
        if download_url != medium_url:
            logger.info(f"   Upgraded to max quality: {download_url}")

        try:
            request = self.transport.prepare("GET", download_url)
        except (requests.RequestException, ValueError) as exc:
            raise CoverRequestError(f"failed to create request: {exc}") from exc

        try:
            resp = self.transport.send(request, stream=True)
        except requests.RequestException as exc:
            raise CoverTransportError(f"failed to download: {exc}") from exc

        try:
            if resp.status_code != 200:
                raise CoverHTTPError(resp.status_code)
            try:
                data = b"".join(resp.iter_content(chunk_size=_CHUNK_SIZE))
            except requests.RequestException as exc:
                raise CoverReadError(f"failed to read data: {exc}") from exc
        finally:
            resp.close()

        logger.info(f"✓ Downloaded {len(data)} bytes")
        return data


# ---------------------------------------------------------------------------
# Module-level helpers
# ---------------------------------------------------------------------------

_default_client: Optional[CoverClient] = None
_default_lock = threading.Lock()


def get_default_client() -> CoverClient:
    """Process-wide CoverClient (created once, reused)."""
    global _default_client

    with _default_lock:
        if _default_client is None:
            _default_client = CoverClient(RequestsTransport())
        return _default_client


def resolve_cover_url(url: str, max_quality: bool = False) -> str:
    return get_default_client().resolve(url, max_quality)


def download_cover(url: str, max_quality: bool = False) -> bytes:
    return get_default_client().download(url, max_quality)


def close_default_client() -> None:
    """Release the process-wide client's connection pool, if one was created."""
    global _default_client

    with _default_lock:
        if _default_client is not None:
            _default_client.transport.close()
            _default_client = None
