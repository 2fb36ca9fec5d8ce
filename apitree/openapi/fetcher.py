"""Download OpenAPI documents over HTTP(S)."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import httpx

from ..config.models import DEFAULT_MAX_CONTENT_BYTES
from ..errors import ParseError

logger = logging.getLogger(__name__)

USER_AGENT = "apitree/0.1"


class DocumentFetcher:
    """Fetch a document by URL with a bounded timeout and size.

    Never called while a writer lock is held.
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.max_content_bytes = max_content_bytes
        self._transport = transport

    def _build_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout_seconds),
            follow_redirects=True,
            headers={
                "User-Agent": USER_AGENT,
                "Accept": "application/json, application/yaml, text/yaml, */*",
            },
            transport=self._transport,
        )

    def fetch(self, url: str) -> str:
        """Return the document body as text.

        Raises:
            ParseError: Bad scheme, network failure, timeout, non-2xx status
                or an oversized body.
        """
        scheme = urlparse(url).scheme
        if scheme not in ("http", "https"):
            raise ParseError(
                f"Unsupported URL scheme {scheme!r}; use http or https", {"url": url}
            )

        try:
            with self._build_client() as client:
                resp = client.get(url)
                resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise ParseError(
                f"Timed out after {self.timeout_seconds}s fetching {url}", {"url": url}
            ) from e
        except httpx.HTTPStatusError as e:
            raise ParseError(
                f"Fetching {url} returned HTTP {e.response.status_code}",
                {"url": url, "status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise ParseError(f"Could not fetch {url}: {e}", {"url": url}) from e

        if len(resp.content) > self.max_content_bytes:
            raise ParseError(
                f"Document at {url} exceeds {self.max_content_bytes} bytes",
                {"url": url, "size": len(resp.content)},
            )
        logger.info(f"Fetched {len(resp.content)} bytes from {url}")
        return resp.text
