from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ddgs import DDGS

from config import PipelineConfig

logger = logging.getLogger("Search")

SearchResults = List[Dict[str, str]]


def _ddgs_text(query: str, max_results: int, region: str) -> SearchResults:
    return list(DDGS().text(query, region=region, max_results=max_results) or [])


class WebSearcher:
    """
    search(query) -> best-match URL | None

    DuckDuckGo through the ``ddgs`` library (blocking), run in a worker thread
    so it does not stall other site crawls. The first http(s) hit that passes
    `accept` wins.
    """

    def __init__(
            self,
            *,
            max_results: int = 10,
            region: str = "wt-wt",
            accept: Optional[Callable[[str], bool]] = None,
            backend: Callable[[str, int, str], SearchResults] = _ddgs_text,
    ) -> None:
        self.max_results = max(1, int(max_results))
        self.region = region
        self._accept = accept
        self._backend = backend

    @classmethod
    def from_config(cls, cfg: PipelineConfig, accept: Optional[Callable[[str], bool]] = None) -> "WebSearcher":
        return cls(max_results=cfg.search_max_results, region=cfg.search_region, accept=accept)

    def _pick(self, results: SearchResults) -> Optional[str]:
        for item in results:
            href = (item.get("href") or "").strip()
            if not href.lower().startswith(("http://", "https://")):
                continue
            if self._accept is not None and not self._accept(href):
                continue
            return href
        return None

    async def search(self, query: str) -> Optional[str]:
        query = (query or "").strip()
        if not query:
            return None
        try:
            results = await asyncio.to_thread(self._backend, query, self.max_results, self.region)
        except Exception as e:
            # ddgs raises its own exception types for rate limits and timeouts.
            logger.error("Search error for %r: %s", query, e)
            return None

        url = self._pick(results)
        logger.info("Search %r -> %s", query, url)
        return url
