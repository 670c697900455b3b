from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from config import PipelineConfig
from errors import FetchFailure

logger = logging.getLogger("Fetcher")


def build_client(cfg: PipelineConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """
    Shared AsyncClient for all site crawls of a run.

    Some servers reject unbranded clients, so we send a browser User-Agent and
    an HTML Accept header on every request.
    """
    headers = {
        "User-Agent": cfg.http_user_agent,
        "Accept": cfg.http_accept,
    }
    limits = httpx.Limits(
        max_keepalive_connections=int(cfg.http_max_keepalive_connections),
        max_connections=int(cfg.http_max_connections),
    )
    timeout = httpx.Timeout(float(cfg.http_timeout_s), connect=float(cfg.http_timeout_s))

    kwargs = {}
    if transport is not None:
        kwargs["transport"] = transport

    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=timeout,
        limits=limits,
        headers=headers,
        verify=bool(cfg.http_verify_ssl),
        **kwargs,
    )


class PageFetcher:
    """
    fetch(url) -> body | None

    Behavior:
      - up to `attempts` GETs, `retry_delay_s` apart
      - non-2xx statuses and transport errors count as a failed attempt
      - non-text content types give '' (nothing to extract)
      - body is read as a stream and capped at `max_bytes`
      - returns None only once every attempt failed
    """

    def __init__(
            self,
            client: httpx.AsyncClient,
            *,
            attempts: int = 2,
            retry_delay_s: float = 1.0,
            max_bytes: int = 2_000_000,
    ) -> None:
        self._client = client
        self.attempts = max(1, int(attempts))
        self.retry_delay_s = max(0.0, float(retry_delay_s))
        self.max_bytes = max(1, int(max_bytes))

    @classmethod
    def from_config(cls, client: httpx.AsyncClient, cfg: PipelineConfig) -> "PageFetcher":
        return cls(
            client,
            attempts=cfg.fetch_attempts,
            retry_delay_s=cfg.fetch_retry_delay_s,
            max_bytes=cfg.crawl_max_bytes_per_page,
        )

    async def _fetch_once(self, url: str) -> str:
        try:
            async with self._client.stream("GET", url) as resp:
                if resp.status_code >= 400:
                    raise FetchFailure(f"HTTP {resp.status_code}")

                ctype = (resp.headers.get("content-type") or "").lower()
                text_like = (
                        ("text" in ctype)
                        or ("html" in ctype)
                        or ("xml" in ctype)
                        or (ctype.strip() == "")
                )
                if not text_like:
                    logger.debug("Not text content at %s (%s)", url, ctype)
                    return ""

                buf = bytearray()
                async for chunk in resp.aiter_bytes():
                    if not chunk:
                        continue
                    remaining = self.max_bytes - len(buf)
                    if remaining <= 0:
                        break
                    buf.extend(chunk[:remaining])
                    if len(buf) >= self.max_bytes:
                        break

                return buf.decode(resp.encoding or "utf-8", errors="ignore")
        except httpx.HTTPError as e:
            raise FetchFailure(f"{type(e).__name__}: {e}") from e

    async def fetch(self, url: str) -> Optional[str]:
        for attempt in range(1, self.attempts + 1):
            try:
                return await self._fetch_once(url)
            except FetchFailure as e:
                logger.warning("Error fetching HTML from %s (attempt %d): %s", url, attempt, e)
                if attempt < self.attempts and self.retry_delay_s > 0:
                    await asyncio.sleep(self.retry_delay_s)
            except LookupError as e:
                # Unknown charset announced by the server.
                logger.warning("Cannot decode %s: %s", url, e)
                return None

        return None
