"""Text-browser wrapper around the `links` binary."""

import asyncio
import gzip
import logging
import shutil
import zlib
from dataclasses import dataclass
from typing import List

from .errors import FetchError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB per dump


@dataclass
class Page:
    """A fetched page: plain-text rendering plus raw markup."""
    text: str
    html: str
    url: str


def decode_html(raw: bytes) -> str:
    """Decode page source, transparently gunzipping compressed responses."""
    try:
        raw = gzip.decompress(raw)
    except (OSError, EOFError, zlib.error):
        # Not gzipped, use as-is
        pass
    return raw.decode("utf-8", errors="replace")


class LinksBrowser:
    """Fetch pages with the `links` text browser."""

    def __init__(self, binary: str = "links", max_bytes: int = DEFAULT_MAX_BYTES):
        self.binary = binary
        self.max_bytes = max_bytes

    async def fetch(self, url: str) -> Page:
        """
        Fetch a URL and return both its text dump and source.

        Raises:
            FetchError: if links is missing, fails, or produces too much output
        """
        logger.info(f"Fetching {url}")
        text = await self._run(["-dump", url], url)
        raw_html = await self._run(["-source", url], url)
        return Page(
            text=text.decode("utf-8", errors="replace").strip(),
            html=decode_html(raw_html),
            url=url,
        )

    def check_installed(self) -> bool:
        """Check if links is on PATH."""
        return shutil.which(self.binary) is not None

    async def _run(self, args: List[str], url: str) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise FetchError(f"Cannot run {self.binary} for {url}: {e}") from e

        stdout, stderr = await proc.communicate()

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise FetchError(
                f"{self.binary} {args[0]} failed for {url} "
                f"(exit {proc.returncode}){': ' + detail if detail else ''}"
            )
        if len(stdout) > self.max_bytes:
            raise FetchError(
                f"Output for {url} exceeds {self.max_bytes} bytes"
            )
        return stdout
