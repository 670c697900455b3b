"""Tests for the depth-first crawler: ordering, termination and failure isolation."""

from typing import Dict, List, Optional

import pytest

import crawler as crawler_module
from crawler import Crawler, CrawlOptions, CrawlState
from errors import ExtractionFailure, InvalidURL, SeedUnresolved
from schemas import CrawlTarget
from seed_policy import SeedBypassPolicy

A = "https://example.com/"
B = "https://example.com/b"
C = "https://example.com/c"


def _page(body: str = "", links: Optional[List[str]] = None) -> str:
    anchors = "".join(f'<a href="{u}">link</a>' for u in (links or []))
    return f"<html><body><p>{body}</p>{anchors}</body></html>"


class FakeFetcher:
    def __init__(self, pages: Dict[str, str]) -> None:
        self.pages = pages
        self.calls: List[str] = []

    async def fetch(self, url: str) -> Optional[str]:
        self.calls.append(url)
        return self.pages.get(url)


class FakeSearcher:
    def __init__(self, result: Optional[str]) -> None:
        self.result = result
        self.queries: List[str] = []

    async def search(self, query: str) -> Optional[str]:
        self.queries.append(query)
        return self.result


class BrokenFetcher:
    async def fetch(self, url: str) -> Optional[str]:
        raise RuntimeError("socket exploded")


def test_crawl_state_counts_and_orders() -> None:
    state = CrawlState()
    state.visit(A)
    state.merge(["b@x.com", "a@x.com", "b@x.com"], ["555-123-4567"])
    state.merge(["a@x.com"], ["555-123-4567", "5551234567"])
    result = state.to_result("x.com")
    assert state.pages_visited == len(state.visited) == 1
    assert result.emails == ["b@x.com", "a@x.com"]
    assert result.phones == ["555-123-4567", "5551234567"]


@pytest.mark.asyncio
async def test_cycle_stops_after_first_email() -> None:
    fetcher = FakeFetcher({
        A: _page("home", [B]),
        B: _page("write info@example.com", [C]),
        C: _page("more sales@example.com", [A]),
    })
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1))

    state = await crawler.traverse(A, "example.com")

    assert fetcher.calls == [A, B]
    assert state.pages_visited == 2
    assert list(state.emails) == ["info@example.com"]


@pytest.mark.asyncio
async def test_cycle_without_emails_visits_each_page_once() -> None:
    fetcher = FakeFetcher({
        A: _page("home", [B]),
        B: _page("b", [C]),
        C: _page("c", [A, B]),
    })
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1))

    state = await crawler.traverse(A, "example.com")

    assert fetcher.calls == [A, B, C]
    assert state.pages_visited == len(state.visited) == 3


@pytest.mark.asyncio
async def test_page_limit_one_fetches_only_seed() -> None:
    links = [f"https://example.com/p{i}" for i in range(20)]
    fetcher = FakeFetcher({A: _page("home", links)})
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=1, min_emails=5))

    result = await crawler.crawl_site(A)

    assert fetcher.calls == [A]
    assert result is not None
    assert result.domain == "example.com"


@pytest.mark.asyncio
async def test_same_url_via_two_paths_is_fetched_once() -> None:
    fetcher = FakeFetcher({
        A: _page("home", [B, C]),
        B: _page("b", [C]),
        C: _page("c"),
    })
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1))

    state = await crawler.traverse(A, "example.com")

    assert fetcher.calls == [A, B, C]
    assert state.pages_visited == 3


@pytest.mark.asyncio
async def test_depth_first_order_follows_subtree_before_sibling() -> None:
    b1 = "https://example.com/b/1"
    fetcher = FakeFetcher({
        A: _page("home", [B, C]),
        B: _page("b", [b1]),
        b1: _page("b1"),
        C: _page("c"),
    })
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1))

    await crawler.traverse(A, "example.com")

    assert fetcher.calls == [A, B, b1, C]


@pytest.mark.asyncio
async def test_priority_pages_are_visited_first() -> None:
    products = "https://example.com/products"
    contact = "https://example.com/contact"
    fetcher = FakeFetcher({
        A: _page("home", [products, contact]),
        contact: _page("nothing here"),
        products: _page("nothing here"),
    })
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1))

    await crawler.traverse(A, "example.com")

    assert fetcher.calls == [A, contact, products]


@pytest.mark.asyncio
async def test_failed_fetch_consumes_quota_and_does_not_descend() -> None:
    fetcher = FakeFetcher({A: _page("home", [B, C])})
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=2, min_emails=1))

    state = await crawler.traverse(A, "example.com")

    # B fails, still counts, and the limit is hit before C.
    assert fetcher.calls == [A, B]
    assert state.pages_visited == 2


@pytest.mark.asyncio
async def test_failed_fetch_continues_with_siblings() -> None:
    fetcher = FakeFetcher({A: _page("home", [B, C]), C: _page("hi info@example.com")})
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1))

    result = await crawler.crawl_site(A)

    assert fetcher.calls == [A, B, C]
    assert result is not None
    assert result.emails == ["info@example.com"]


@pytest.mark.asyncio
async def test_max_depth_limits_descent() -> None:
    fetcher = FakeFetcher({A: _page("home", [B]), B: _page("b", [C]), C: _page("c")})
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=10, min_emails=1, max_depth=1))

    await crawler.traverse(A, "example.com")

    assert fetcher.calls == [A, B]


@pytest.mark.asyncio
async def test_emails_of_other_domains_are_ignored_but_phones_kept() -> None:
    fetcher = FakeFetcher({A: _page("bob@gmail.com call 555-123-4567")})
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=5, min_emails=1))

    result = await crawler.crawl_site(A)

    assert result is not None
    assert result.domain == "example.com"
    assert result.emails == []
    assert result.phones == ["555-123-4567"]


@pytest.mark.asyncio
async def test_invalid_seed_yields_none_without_affecting_siblings() -> None:
    fetcher = FakeFetcher({A: _page("hi info@example.com")})
    crawler = Crawler(fetcher, options=CrawlOptions(page_limit=5, min_emails=1))

    results = await crawler.crawl_many([
        CrawlTarget(seed_url="not a url"),
        CrawlTarget(seed_url=A),
    ], concurrency=2)

    assert results[0] is None
    assert results[1] is not None
    assert results[1].emails == ["info@example.com"]


@pytest.mark.asyncio
async def test_run_raises_invalid_url() -> None:
    crawler = Crawler(FakeFetcher({}))
    with pytest.raises(InvalidURL):
        await crawler.run(CrawlTarget(seed_url="http://"))


@pytest.mark.asyncio
async def test_unexpected_error_is_contained_per_target() -> None:
    crawler = Crawler(BrokenFetcher(), options=CrawlOptions(page_limit=5, min_emails=1))
    assert await crawler.crawl_site(A) is None


@pytest.mark.asyncio
async def test_parse_errors_surface_as_extraction_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(body: str):
        raise ValueError("bad markup")

    monkeypatch.setattr(crawler_module, "parse_page", explode)
    crawler = Crawler(FakeFetcher({A: _page("info@example.com")}))

    with pytest.raises(ExtractionFailure, match="bad markup"):
        await crawler.run(CrawlTarget(seed_url=A))
    assert await crawler.crawl_site(A) is None


@pytest.mark.asyncio
async def test_bypassed_seed_is_replaced_by_search_result() -> None:
    acme = "https://acme.io/"
    fetcher = FakeFetcher({acme: _page("sales@acme.io")})
    searcher = FakeSearcher("https://acme.io")
    crawler = Crawler(
        fetcher,
        options=CrawlOptions(page_limit=5, min_emails=1),
        searcher=searcher,
        policy=SeedBypassPolicy(["example.com"]),
    )

    result = await crawler.crawl_site("http://www.example.com", "Acme")

    assert searcher.queries == ["Acme official website"]
    assert fetcher.calls == [acme]
    assert result is not None
    assert result.domain == "acme.io"
    assert result.emails == ["sales@acme.io"]


@pytest.mark.asyncio
async def test_bypassed_seed_without_search_hit_is_unresolved() -> None:
    crawler = Crawler(
        FakeFetcher({}),
        searcher=FakeSearcher(None),
        policy=SeedBypassPolicy(["example.com"]),
    )
    with pytest.raises(SeedUnresolved):
        await crawler.run(CrawlTarget(seed_url="http://example.com", company_name="Acme"))
    assert await crawler.crawl_site("http://example.com", "Acme") is None


@pytest.mark.asyncio
async def test_bypassed_seed_without_company_name_is_unresolved() -> None:
    searcher = FakeSearcher("https://acme.io")
    crawler = Crawler(FakeFetcher({}), searcher=searcher, policy=SeedBypassPolicy(["example.com"]))

    assert await crawler.crawl_site("http://example.com") is None
    assert searcher.queries == []


@pytest.mark.asyncio
async def test_search_fallback_disabled_crawls_seed_as_is() -> None:
    fetcher = FakeFetcher({A: _page("hi info@example.com")})
    searcher = FakeSearcher("https://acme.io")
    crawler = Crawler(
        fetcher,
        options=CrawlOptions(page_limit=5, min_emails=1, enable_search_fallback=False),
        searcher=searcher,
        policy=SeedBypassPolicy(["example.com"]),
    )

    result = await crawler.crawl_site(A, "Acme")

    assert searcher.queries == []
    assert result is not None
    assert result.emails == ["info@example.com"]
