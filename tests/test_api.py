"""Tests for the HTTP wrapper."""

import httpx
from fastapi.testclient import TestClient

from api import create_app
from config import PipelineConfig

PAGES = {
    "http://acme.test/": (
        '<html><body>call 555-123-4567 <a href="/about">About</a><a href="/x">x</a></body></html>'
    ),
    "http://acme.test/about": "<html><body>ceo@acme.test and cfo@acme.test</body></html>",
    "http://acme.test/x": "<html><body>never reached</body></html>",
}


def _client() -> TestClient:
    def handler(request: httpx.Request) -> httpx.Response:
        html = PAGES.get(str(request.url))
        if html is None:
            return httpx.Response(404)
        return httpx.Response(200, html=html)

    cfg = PipelineConfig(fetch_retry_delay_s=0.0, fetch_attempts=1)
    return TestClient(create_app(cfg, transport=httpx.MockTransport(handler)))


def test_root_reports_running() -> None:
    resp = _client().get("/")
    assert resp.status_code == 200
    assert resp.text == "API running"


def test_scrape_returns_one_entry_per_url_in_order() -> None:
    resp = _client().post("/api", json={"urls": ["acme.test", "http://bad host", ""], "pageLimit": 5})
    assert resp.status_code == 200

    body = resp.json()
    assert body[0] == {
        "url": "acme.test",
        "data": {"emails": ["ceo@acme.test", "cfo@acme.test"], "phones": ["555-123-4567"]},
    }
    assert body[1] == {"url": "http://bad host", "error": "Failed to scrape"}
    assert body[2] == {"url": "", "error": "Missing URL"}


def test_scrape_page_limit_one_only_reads_seed() -> None:
    resp = _client().post("/api", json={"urls": ["acme.test"], "pageLimit": 1})
    assert resp.json() == [{"url": "acme.test", "data": {"emails": [], "phones": ["555-123-4567"]}}]


def test_scrape_rejects_empty_url_list() -> None:
    assert _client().post("/api", json={"urls": []}).status_code == 400
    assert _client().post("/api", json={"urls": "acme.test"}).status_code == 422
