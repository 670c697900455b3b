from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Optional

import httpx

from config import PipelineConfig
from crawler import Crawler, CrawlOptions, Searcher
from errors import CrawlError
from fetcher import PageFetcher, build_client
from schemas import CrawlTarget, Record
from search import WebSearcher
from seed_policy import SeedBypassPolicy

logger = logging.getLogger("Phase 1")


def _reset_outputs(r: Record) -> None:
    """Idempotency: every rerun starts from the failure defaults."""
    r.domain = ""
    r.emails = []
    r.phones = []
    r.crawl_status = "not_started"
    r.debug["phase1_reason"] = "unset"
    r.debug["phase1_error"] = None
    r.debug["phase1_latency_s"] = None


async def _crawl_record(r: Record, crawler: Crawler) -> None:
    """
    Crawl one prepared record and merge the result into it.

    Status policy:
      - crawl_status "success" only if at least one email was found
      - "no_contacts" for a clean crawl with no emails (phones may exist)
      - the error kind (invalid_url, seed_unresolved, ...) when the target failed;
        outputs then keep their defaults '', [], []
    """
    target = CrawlTarget(seed_url=r.seed_url or "", company_name=r.company_name)
    t0 = time.perf_counter()

    try:
        result = await crawler.run(target)
    except CrawlError as e:
        logger.warning("Error scraping website %s: %s", target.seed_url, e)
        r.crawl_status = e.kind
        r.status = "failed"
        r.debug["phase1_reason"] = e.kind
        r.debug["phase1_error"] = str(e)
        return
    except Exception as e:
        logger.exception("Unexpected error scraping website %s", target.seed_url)
        r.crawl_status = "failed"
        r.status = "failed"
        r.debug["phase1_reason"] = "unexpected_error"
        r.debug["phase1_error"] = f"{type(e).__name__}: {e}"
        return
    finally:
        r.debug["phase1_latency_s"] = time.perf_counter() - t0

    r.domain = result.domain
    r.emails = list(result.emails)
    r.phones = list(result.phones)
    r.status = "crawled"
    if result.emails:
        r.crawl_status = "success"
        r.debug["phase1_reason"] = "emails_found"
    else:
        r.crawl_status = "no_contacts"
        r.debug["phase1_reason"] = "no_emails_found"


async def run_phase_async(
        records: List[Record],
        cfg: PipelineConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        searcher: Optional[Searcher] = None,
) -> List[Record]:
    """
    Phase 1: Crawl and extract (async)

    Inputs:
      - record.seed_url (Phase 0)
      - record.company_name (search fallback)

    Output:
      - record.domain / record.emails / record.phones
      - record.crawl_status, record.status
      - record.debug["phase1_*"]

    At most cfg.crawl_global_concurrency sites are crawled at once; pages of one
    site are always fetched one after another.
    """
    policy = SeedBypassPolicy.from_config(cfg)
    if searcher is None and cfg.crawl_enable_search_fallback:
        searcher = WebSearcher.from_config(cfg, accept=policy.accepts_result)

    for r in records:
        if not r.skipped:
            _reset_outputs(r)

    work = [r for r in records if not r.skipped and r.seed_url]
    sem = asyncio.Semaphore(max(1, int(cfg.crawl_global_concurrency)))

    async with build_client(cfg, transport=transport) as client:
        crawler = Crawler(
            PageFetcher.from_config(client, cfg),
            options=CrawlOptions.from_config(cfg),
            searcher=searcher,
            policy=policy,
        )

        async def _guarded(r: Record) -> None:
            async with sem:
                logger.info("Processing %s...", r.seed_url)
                await _crawl_record(r, crawler)

        await asyncio.gather(*(_guarded(r) for r in work))

    found = sum(1 for r in work if r.emails)
    logger.info("Phase 1 complete: crawled=%d with_emails=%d", len(work), found)
    return records


# -----------------------------
# Sync wrapper (pipeline_runner.py expects this)
# -----------------------------
def run_phase(records: List[Record], cfg: PipelineConfig) -> List[Record]:
    """
    Phase 1: Crawl and extract (sync wrapper)

    Note:
      If you are running inside an existing event loop,
      call run_phase_async(records, cfg) instead.
    """
    try:
        return asyncio.run(run_phase_async(records, cfg))
    except RuntimeError as e:
        msg = str(e).lower()
        if "running event loop" in msg or "asyncio.run()" in msg:
            raise RuntimeError(
                "Phase 1 run_phase() was called from a running event loop. "
                "Use: await run_phase_async(records, cfg) instead."
            ) from e
        raise
