from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set

from config import PipelineConfig
from errors import InvalidURL
from extractor import domain_of

logger = logging.getLogger("Seed policy")


def _read_asset_lines(path: Path) -> List[str]:
    """
    Read a line-based asset file.

    Rules:
      - one entry per line
      - ignore empty lines
      - ignore comments starting with '#'
    """
    if not path.exists():
        return []
    out: List[str] = []
    for raw in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        s = (raw or "").strip()
        if not s or s.startswith("#"):
            continue
        out.append(s)
    return out


class SeedBypassPolicy:
    """
    should_bypass_seed(url, company_name) -> bool

    A seed is bypassed when its domain is a known placeholder (example.com and
    friends) or a subdomain of one. Bypassed seeds are replaced through the web
    search fallback, using the company name.
    """

    def __init__(self, domains: Iterable[str], query_template: str = "{company_name} official website") -> None:
        self.domains: Set[str] = {d.strip().lower() for d in domains if d and d.strip()}
        self.query_template = query_template

    @classmethod
    def from_config(cls, cfg: PipelineConfig) -> "SeedBypassPolicy":
        """assets/phase1/bypass_domains.txt replaces cfg.bypass_domains when present."""
        lines = _read_asset_lines(cfg.phase_asset_path(1, "bypass_domains.txt"))
        domains = lines if lines else list(cfg.bypass_domains)
        return cls(domains, query_template=cfg.search_query_template)

    def _is_placeholder(self, domain: str) -> bool:
        return any(domain == d or domain.endswith("." + d) for d in self.domains)

    def should_bypass_seed(self, url: str, company_name: Optional[str] = None) -> bool:
        try:
            domain = domain_of(url)
        except InvalidURL:
            return False
        return self._is_placeholder(domain)

    def accepts_result(self, url: str) -> bool:
        """Search hits pointing back to a placeholder domain are useless."""
        return not self.should_bypass_seed(url)

    def search_query(self, company_name: Optional[str]) -> Optional[str]:
        name = (company_name or "").strip()
        if not name:
            return None
        return self.query_template.format(company_name=name)
