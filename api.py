"""HTTP wrapper around the crawler.

POST /api takes ``{"urls": [...], "pageLimit": n}`` and answers with one entry
per URL, in request order::

    [{"url": ..., "data": {"emails": [...], "phones": [...]}},
     {"url": ..., "error": "Failed to scrape"}]

This variant never uses the search fallback and stops a site at the first
matching email.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from config import PipelineConfig
from crawler import Crawler, CrawlOptions
from fetcher import PageFetcher, build_client
from phases.phase0.phase0_prepare import seed_url_from_website
from schemas import CrawlTarget

logger = logging.getLogger("API")


class ScrapeRequest(BaseModel):
    urls: List[str] = Field(default_factory=list)
    page_limit: Optional[int] = Field(default=None, alias="pageLimit", ge=1)


def _simple_options(cfg: PipelineConfig, page_limit: Optional[int]) -> CrawlOptions:
    return CrawlOptions(
        page_limit=page_limit or cfg.api_page_limit,
        min_emails=max(1, int(cfg.api_min_emails)),
        enable_search_fallback=False,
        max_depth=cfg.crawl_max_depth,
    )


def create_app(
        cfg: Optional[PipelineConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Parameters
    ----------
    cfg
        Crawl and HTTP settings; defaults to PipelineConfig.from_env().
    transport
        Optional httpx transport for the outgoing fetches (tests use MockTransport).
    """
    cfg = cfg or PipelineConfig.from_env()
    app = FastAPI(title="contact-crawler")

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "API running"

    @app.post("/api")
    async def scrape(req: ScrapeRequest) -> List[Dict[str, Any]]:
        if not req.urls:
            raise HTTPException(status_code=400, detail="'urls' must be a non-empty array of strings")

        results: List[Dict[str, Any]] = [{"url": u} for u in req.urls]
        targets: List[CrawlTarget] = []
        slots: List[int] = []
        for i, u in enumerate(req.urls):
            seed, _ = seed_url_from_website(u)
            if seed is None:
                results[i]["error"] = "Missing URL"
                continue
            targets.append(CrawlTarget(seed_url=seed))
            slots.append(i)

        async with build_client(cfg, transport=transport) as client:
            crawler = Crawler(
                PageFetcher.from_config(client, cfg),
                options=_simple_options(cfg, req.page_limit),
            )
            crawled = await crawler.crawl_many(targets, concurrency=cfg.crawl_global_concurrency)

        for i, res in zip(slots, crawled):
            if res is None:
                results[i]["error"] = "Failed to scrape"
            else:
                results[i]["data"] = {"emails": res.emails, "phones": res.phones}

        logger.info("Scraped %d urls (%d failed)", len(req.urls), sum(1 for r in results if "error" in r))
        return results

    return app


def main() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "3000"))
    logger.info("Server is running on port %d", port)
    uvicorn.run(create_app(), host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
