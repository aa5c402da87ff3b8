"""HTTP page fetcher using httpx async client."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import httpx

from nobetci.config import get_settings
from nobetci.ingestion.errors import FetchError

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
    "Accept-Language": "tr-TR,tr;q=0.9,en;q=0.8",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}
MAX_REDIRECTS = 5

_META_CHARSET_RE = re.compile(rb"""<meta[^>]+charset=["']?([\w-]+)""", re.I)


@dataclass
class FetchedPage:
    """A successfully fetched response body plus the headers the pipeline needs."""

    url: str
    status_code: int
    text: str
    etag: str | None = None
    last_modified: str | None = None
    content_type: str = ""
    cookies: dict[str, str] = field(default_factory=dict)

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304


def build_client(timeout: float | None = None) -> httpx.AsyncClient:
    """Async client with browser-like headers and a hard per-request timeout.

    The timeout is enforced by httpx at the transport level, so a slow
    source is aborted rather than abandoned.
    """
    return httpx.AsyncClient(
        timeout=timeout if timeout is not None else get_settings().fetch_timeout_seconds,
        follow_redirects=True,
        max_redirects=MAX_REDIRECTS,
        headers=DEFAULT_HEADERS,
    )


def decode_body(response: httpx.Response) -> str:
    """Decode a body; Turkish sites often omit the charset header or serve windows-1254."""
    if response.charset_encoding:
        return response.text
    content = response.content
    meta = _META_CHARSET_RE.search(content[:4096])
    if meta:
        try:
            return content.decode(meta.group(1).decode("ascii"), errors="replace")
        except LookupError:
            pass
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return content.decode("windows-1254", errors="replace")


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    *,
    method: str = "GET",
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    data: dict[str, str] | None = None,
    allow_not_modified: bool = False,
) -> FetchedPage:
    """Fetch a URL and return a FetchedPage, or raise FetchError.

    - One retry on connection error
    - Timeouts are not retried (the caller's budget is per fetch)
    - 304 is returned only when allow_not_modified is set
    - Any other non-2xx raises FetchError
    """
    for attempt in range(2):  # attempt 0 = first try, attempt 1 = retry
        try:
            response = await client.request(method, url, headers=headers, params=params, data=data)
            break
        except httpx.ConnectError as exc:
            if attempt == 0:
                logger.warning("Fetch attempt 1 failed for %s: %s, retrying", url, exc)
                continue
            raise FetchError(f"Connection failed for {url}: {exc}", url=url) from exc
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timeout fetching {url}", url=url) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"HTTP error fetching {url}: {exc}", url=url) from exc

    status = response.status_code
    if status == 304 and allow_not_modified:
        return FetchedPage(
            url=str(response.url),
            status_code=status,
            text="",
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
        )
    if not 200 <= status < 300:
        raise FetchError(f"HTTP {status} for {url}", url=url, status_code=status)

    return FetchedPage(
        url=str(response.url),
        status_code=status,
        text=decode_body(response),
        etag=response.headers.get("etag"),
        last_modified=response.headers.get("last-modified"),
        content_type=response.headers.get("content-type", ""),
        cookies=dict(response.cookies),
    )
