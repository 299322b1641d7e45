"""Content fetcher: streams a URL to a scratch directory while hashing it."""

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable
from urllib.parse import unquote, urlparse

import requests

from . import __version__

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 10  # seconds
CHUNK_SIZE = 8192
BODY_SNIPPET_LIMIT = 512

# Recorded hashes in every state file depend on this; never change it silently.
HASH_ALGORITHM = "sha1"


class FetchError(Exception):
    """Raised when a download fails."""

    pass


class IntegrityError(Exception):
    """Raised when downloaded content does not match its expected hash."""

    pass


@dataclass
class DownloadProgress:
    received_bytes: int
    total_bytes: int | None


@dataclass
class DownloadOutcome:
    path: Path
    hash: str


ProgressCallback = Callable[[DownloadProgress], None]


def hash_matches(expected: str, actual: str) -> bool:
    return expected.lower() == actual.lower()


def verify_hash(expected: str, actual: str, path: Path) -> None:
    """Raise IntegrityError unless ``actual`` equals ``expected`` (case-insensitive)."""
    if not hash_matches(expected, actual):
        raise IntegrityError(f"Hash mismatch for {path}. Expected {expected}, got {actual}")


class ContentFetcher:
    """Downloads one file at a time, reporting byte-level progress."""

    def __init__(self, session: requests.Session | None = None, timeout: float = DOWNLOAD_TIMEOUT):
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"modpack-installer/{__version__}")
        self.timeout = timeout

    def download_to_dir(
        self,
        url: str,
        temp_dir: Path,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadOutcome:
        """
        Download ``url`` into ``temp_dir``.

        Returns the path of the downloaded file and its hex digest.
        """
        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise FetchError(f"Failed to download from {url}: {e}") from e

        with response:
            _ensure_success(response, url)
            file_name = extract_file_name(response)

            temp_dir = Path(temp_dir)
            temp_dir.mkdir(parents=True, exist_ok=True)
            destination = temp_dir / file_name

            total_bytes = _content_length(response)
            received_bytes = 0
            hasher = hashlib.new(HASH_ALGORITHM)
            try:
                with open(destination, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        hasher.update(chunk)
                        received_bytes += len(chunk)
                        if on_progress:
                            on_progress(DownloadProgress(received_bytes, total_bytes))
            except requests.RequestException as e:
                destination.unlink(missing_ok=True)
                raise FetchError(f"Failed to read response body from {url}: {e}") from e
            except OSError as e:
                destination.unlink(missing_ok=True)
                raise FetchError(f"Failed to write {destination}: {e}") from e

        logger.debug("Fetched %s (%d bytes) to %s", url, received_bytes, destination)
        return DownloadOutcome(path=destination, hash=hasher.hexdigest())


def _content_length(response: requests.Response) -> int | None:
    value = response.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


def _ensure_success(response: requests.Response, url: str) -> None:
    if response.ok:
        return
    try:
        body = response.text
    except requests.RequestException:
        snippet = "<failed to read body>"
    else:
        if not body:
            snippet = "<empty body>"
        elif len(body) > BODY_SNIPPET_LIMIT:
            snippet = f"{body[:BODY_SNIPPET_LIMIT]}..."
        else:
            snippet = body
    raise FetchError(
        f"Request to {url} failed with status {response.status_code}. "
        f"Body snippet: {snippet}"
    )


_FILENAME_STAR_RE = re.compile(r"filename\*\s*=\s*([^;]+)", re.IGNORECASE)
_FILENAME_RE = re.compile(r"filename\s*=\s*(\"[^\"]*\"|[^;]+)", re.IGNORECASE)


def _name_from_content_disposition(header: str) -> str | None:
    # RFC 5987: filename*=UTF-8''name%20with%20spaces.jar
    match = _FILENAME_STAR_RE.search(header)
    if match:
        value = match.group(1).strip().strip('"')
        _, _, encoded = value.rpartition("'")
        name = unquote(encoded).strip()
        if name:
            return name
    match = _FILENAME_RE.search(header)
    if match:
        name = match.group(1).strip().strip('"').strip()
        if name:
            return name
    return None


def extract_file_name(response: requests.Response) -> str:
    """
    Determine the destination file name of a response.

    Content-Disposition wins; otherwise the last path segment of the final
    (post-redirect) URL, percent-decoded. Only the base name is kept.
    """
    header = response.headers.get("content-disposition")
    if header:
        name = _name_from_content_disposition(header)
        if name:
            return _base_name(name)

    segment = urlparse(response.url).path.rsplit("/", 1)[-1]
    name = unquote(segment).strip()
    if name:
        return _base_name(name)

    raise FetchError(
        f"Could not determine file name from final URL '{response.url}' or response headers"
    )


def _base_name(name: str) -> str:
    base = PurePosixPath(name.replace("\\", "/")).name
    if not base or base in (".", ".."):
        raise FetchError(f"Refusing unsafe file name {name!r}")
    return base
