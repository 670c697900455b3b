from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Set, Tuple, Union
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from config import PRIORITY_PAGES, SKIP_EXTENSIONS
from errors import InvalidURL

logger = logging.getLogger("Extractor")

# -----------------------------
# Extraction regex
# -----------------------------
EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")

# 555-123-4567, 555.123.4567, 555 123 4567, 5551234567. Kept verbatim.
PHONE_REGEX = re.compile(r"\b[0-9]{3}[-.\s]?[0-9]{3}[-.\s]?[0-9]{4}\b")

HTML_PARSER = "html.parser"

Page = Union[str, BeautifulSoup]


# -----------------------------
# Small utilities
# -----------------------------
def _unique_preserve_order(items: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    out: List[str] = []
    for x in items:
        if x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out


def _soup(page: Page) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page or "", HTML_PARSER)


def parse_page(html_text: str) -> BeautifulSoup:
    """Parse once; every extractor below accepts the result as well as raw HTML."""
    return _soup(html_text)


def normalize_url(url: str) -> str:
    """
    Light normalization so the same page reached by different spellings shares
    one visited-set key:
      - lowercase scheme and host
      - empty path becomes '/'

    Query and fragment are kept; two URLs that differ there are different pages.

    Raises InvalidURL when the string has no scheme or host.
    """
    raw = (url or "").strip()
    try:
        u = urlparse(raw)
        host = u.hostname
    except ValueError as e:
        raise InvalidURL(f"Invalid URL format: {url!r}") from e

    if not u.scheme or not host or " " in u.netloc:
        raise InvalidURL(f"Invalid URL format: {url!r}")

    path = u.path or "/"
    return urlunparse((u.scheme.lower(), u.netloc.lower(), path, u.params, u.query, u.fragment))


def domain_of(url: str) -> str:
    """
    Scope domain of a URL: lowercase hostname with a leading 'www.' removed.

    Raises InvalidURL for unparsable input.
    """
    try:
        host = urlparse((url or "").strip()).hostname
    except ValueError as e:
        raise InvalidURL(f"Invalid URL format: {url!r}") from e

    host = (host or "").strip().lower().rstrip(".")
    if not host or " " in host:
        raise InvalidURL(f"Invalid URL format: {url!r}")

    if host.startswith("www."):
        host = host[len("www."):]
    return host


def _path_extension(path: str) -> str:
    """Substring from the last '.' of the path ('' when there is none)."""
    i = path.rfind(".")
    return path[i:] if i >= 0 else ""


def _last_segment(path: str) -> str:
    if path.endswith("/"):
        path = path[:-1]
    return path.rsplit("/", 1)[-1]


# -----------------------------
# HTML capabilities
# -----------------------------
def extract_text(page: Page) -> str:
    """
    Visible text of the page body (whole document when there is no <body>).

    Text nodes are joined with a space so numbers in adjacent elements do not
    run together and defeat the word boundaries of PHONE_REGEX.
    """
    soup = _soup(page)
    root = soup.body if soup.body is not None else soup
    return root.get_text(" ")


def parse_links(page: Page, base_url: str) -> List[str]:
    """Every a[href] resolved against base_url, in document order."""
    soup = _soup(page)
    out: List[str] = []
    for a in soup.find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if not href:
            continue
        out.append(urljoin(base_url, href))
    return out


# -----------------------------
# Contact extraction
# -----------------------------
def extract_emails(text: str, domain: str) -> List[str]:
    """
    Emails whose address ends with '@<domain>' (case-insensitive).

    Subdomain and cousin-domain addresses are rejected by the suffix check.
    Lowercased, deduplicated, first-seen order.
    """
    if not text or not domain:
        return []

    suffix = "@" + domain.lower()
    found = (m.lower() for m in EMAIL_REGEX.findall(text))
    return _unique_preserve_order(e for e in found if e.endswith(suffix))


def extract_phones(text: str) -> List[str]:
    """Phone-like substrings exactly as they appear; identical strings collapse."""
    if not text:
        return []
    return _unique_preserve_order(PHONE_REGEX.findall(text))


def extract_contacts(page: Page, domain: str) -> Tuple[List[str], List[str]]:
    """
    (emails, phones) of one page.

    Emails are matched on lowercased body text, phones on the raw text.
    """
    text = extract_text(page)
    return extract_emails(text.lower(), domain), extract_phones(text)


# -----------------------------
# Link discovery
# -----------------------------
def extract_links(page: Page, base_url: str, scope_domain: str) -> List[str]:
    """
    In-scope outbound links of a page, priority pages first.

    Rules:
      - resolve against base_url
      - drop non-http(s) links (mailto:, javascript:, tel:, ...)
      - drop links whose path extension is in SKIP_EXTENSIONS
      - drop links whose hostname does not end with scope_domain
        (plain suffix match, so subdomains are in scope)
      - links whose last path segment is a priority page (contact/about/team/staff)
        come before every other link; among themselves, first found first

    No dedup here: the crawler's visited set is the only dedup.
    """
    scope = (scope_domain or "").lower()
    priority: List[str] = []
    ordinary: List[str] = []

    for absolute in parse_links(page, base_url):
        try:
            url = normalize_url(absolute)
        except InvalidURL:
            logger.debug("Dropping unparsable link %r on %s", absolute, base_url)
            continue

        u = urlparse(url)
        if u.scheme not in ("http", "https"):
            continue

        path = u.path.lower()
        if _path_extension(path) in SKIP_EXTENSIONS:
            continue

        host: Optional[str] = u.hostname
        if not host or not host.endswith(scope):
            continue

        if _last_segment(path) in PRIORITY_PAGES:
            priority.append(url)
        else:
            ordinary.append(url)

    return priority + ordinary
