from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Set, Tuple

from config import PipelineConfig
from errors import CrawlError, ExtractionFailure, SeedUnresolved
from extractor import domain_of, extract_contacts, extract_links, normalize_url, parse_page
from schemas import CrawlResult, CrawlTarget
from seed_policy import SeedBypassPolicy

logger = logging.getLogger("Crawler")


class Fetcher(Protocol):
    async def fetch(self, url: str) -> Optional[str]: ...


class Searcher(Protocol):
    async def search(self, query: str) -> Optional[str]: ...


@dataclass(frozen=True)
class CrawlOptions:
    page_limit: int = 100
    min_emails: int = 50
    enable_search_fallback: bool = True
    max_depth: Optional[int] = None

    @classmethod
    def from_config(cls, cfg: PipelineConfig) -> "CrawlOptions":
        return cls(
            page_limit=max(1, int(cfg.crawl_page_limit)),
            min_emails=max(1, int(cfg.crawl_min_emails)),
            enable_search_fallback=bool(cfg.crawl_enable_search_fallback),
            max_depth=cfg.crawl_max_depth,
        )


@dataclass
class CrawlState:
    """
    Traversal state of one site. Created per target, never shared.

    emails/phones are dicts used as insertion-ordered sets so results come out
    in first-seen order.
    """

    visited: Set[str] = field(default_factory=set)
    emails: Dict[str, None] = field(default_factory=dict)
    phones: Dict[str, None] = field(default_factory=dict)
    pages_visited: int = 0

    def visit(self, url: str) -> None:
        self.visited.add(url)
        self.pages_visited += 1

    def merge(self, emails: Iterable[str], phones: Iterable[str]) -> None:
        for e in emails:
            self.emails.setdefault(e, None)
        for p in phones:
            self.phones.setdefault(p, None)

    def to_result(self, domain: str) -> CrawlResult:
        return CrawlResult(domain=domain, emails=list(self.emails), phones=list(self.phones))


def _analyze_page(body: str, url: str, domain: str, follow: bool) -> Tuple[List[str], List[str], List[str]]:
    """Parse one page and pull its contacts and, when follow is set, its in-scope links."""
    try:
        page = parse_page(body)
        emails, phones = extract_contacts(page, domain)
    except Exception as e:
        raise ExtractionFailure(f"Extraction failed on {url}: {e}") from e

    if not follow:
        return emails, phones, []
    try:
        links = extract_links(page, url, domain)
    except Exception as e:
        raise ExtractionFailure(f"Link extraction failed on {url}: {e}") from e
    return emails, phones, links


class Crawler:
    """
    Depth-first, same-domain contact crawler.

    States per target: resolving -> traversing -> done.

    The walk keeps an explicit stack of link iterators instead of recursing, so
    stack growth does not depend on site depth. Visit order is the same as the
    recursive definition: a page's links are explored one at a time, each
    subtree to completion before the next sibling.

    Termination (checked after every fetch attempt, global for the site):
      - len(emails) >= min_emails
      - pages_visited >= page_limit
    """

    def __init__(
            self,
            fetcher: Fetcher,
            *,
            options: Optional[CrawlOptions] = None,
            searcher: Optional[Searcher] = None,
            policy: Optional[SeedBypassPolicy] = None,
    ) -> None:
        self.fetcher = fetcher
        self.options = options or CrawlOptions()
        self.searcher = searcher
        self.policy = policy

    # -----------------------------
    # Resolving
    # -----------------------------
    async def resolve(self, target: CrawlTarget) -> Tuple[str, str]:
        """
        Returns (seed_url, scope_domain).

        Raises InvalidURL for an unparsable seed and SeedUnresolved when the
        seed must be bypassed but the search fallback has nothing.
        """
        seed = normalize_url(target.seed_url)
        domain = domain_of(seed)

        if not self.options.enable_search_fallback or self.policy is None:
            return seed, domain
        if not self.policy.should_bypass_seed(seed, target.company_name):
            return seed, domain

        logger.info("Skipping %s - Searching for appropriate URL...", seed)

        query = self.policy.search_query(target.company_name)
        if query is None:
            raise SeedUnresolved(f"Company name not found for {seed}")
        if self.searcher is None:
            raise SeedUnresolved(f"No search capability to replace {seed}")

        found = await self.searcher.search(query)
        if not found:
            raise SeedUnresolved(f"Could not find an appropriate URL for {target.company_name}")

        logger.info("Found URL: %s", found)
        seed = normalize_url(found)
        return seed, domain_of(seed)

    # -----------------------------
    # Traversing
    # -----------------------------
    def _stop_reason(self, state: CrawlState) -> Optional[str]:
        if len(state.emails) >= self.options.min_emails:
            return f"Reached the desired number of {self.options.min_emails} emails."
        if state.pages_visited >= self.options.page_limit:
            return f"Reached the limit of {self.options.page_limit} pages."
        return None

    async def traverse(self, seed_url: str, domain: str) -> CrawlState:
        state = CrawlState()
        stack: List[Iterator[str]] = [iter([seed_url])]
        max_depth = self.options.max_depth

        while stack:
            url = next(stack[-1], None)
            if url is None:
                stack.pop()
                continue
            if url in state.visited:
                continue

            depth = len(stack) - 1
            state.visit(url)
            logger.info("Scraping %s...", url)

            body = await self.fetcher.fetch(url)
            if not body:
                logger.info("Skipping %s - No HTML content", url)
                reason = self._stop_reason(state)
                if reason:
                    logger.info(reason)
                    break
                continue

            follow = max_depth is None or depth < max_depth
            # Parsing is CPU-bound; keep it off the loop so other sites keep crawling.
            emails, phones, links = await asyncio.to_thread(_analyze_page, body, url, domain, follow)

            state.merge(emails, phones)

            reason = self._stop_reason(state)
            if reason:
                logger.info(reason)
                break

            if follow:
                stack.append(iter(links))

        return state

    # -----------------------------
    # Per-target entry points
    # -----------------------------
    async def run(self, target: CrawlTarget) -> CrawlResult:
        """Like crawl_site() but raises CrawlError so callers can tell failures apart."""
        seed, domain = await self.resolve(target)
        state = await self.traverse(seed, domain)
        logger.info(
            "Finished %s: pages=%d emails=%d phones=%d",
            domain,
            state.pages_visited,
            len(state.emails),
            len(state.phones),
        )
        return state.to_result(domain)

    async def crawl_site(self, seed_url: str, company_name: Optional[str] = None) -> Optional[CrawlResult]:
        """
        Crawl one site. Returns None when the target fails for any reason; the
        failure never escapes to sibling crawls.
        """
        target = CrawlTarget(seed_url=seed_url, company_name=company_name)
        try:
            return await self.run(target)
        except CrawlError as e:
            logger.warning("Error scraping website %s: %s", seed_url, e)
            return None
        except Exception:
            logger.exception("Unexpected error scraping website %s", seed_url)
            return None

    async def crawl_many(
            self,
            targets: Sequence[CrawlTarget],
            concurrency: int = 5,
    ) -> List[Optional[CrawlResult]]:
        """Crawl targets with at most `concurrency` sites in flight; results in input order."""
        sem = asyncio.Semaphore(max(1, int(concurrency)))

        async def _guarded(t: CrawlTarget) -> Optional[CrawlResult]:
            async with sem:
                return await self.crawl_site(t.seed_url, t.company_name)

        return list(await asyncio.gather(*(_guarded(t) for t in targets)))
