from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, FrozenSet, Optional, Tuple

# -------------------------
# Record fields (storage.py, phases)
# -------------------------
# Input records are free-form mappings. These are the keys we read and write;
# everything else is passed through untouched.
COL_WEBSITE = "website"
COL_COMPANY_NAME = "companyName"
COL_DOMAIN = "domain"
COL_EMAILS = "emails"
COL_PHONES = "phones"

# -------------------------
# Extraction vocabulary (extractor.py)
# -------------------------
PRIORITY_PAGES: FrozenSet[str] = frozenset({"contact", "about", "team", "staff"})
SKIP_EXTENSIONS: FrozenSet[str] = frozenset(
    {".pdf", ".png", ".jpg", ".jpeg", ".gif", ".mp4", ".mov", ".avi", ".wmv"}
)

# -------------------------
# Pipeline phases (module names) (pipeline_runner.py)
# -------------------------
PHASE_MODULES: Dict[int, str] = {
    0: "phases.phase0.phase0_prepare",
    1: "phases.phase1.phase1_crawl",
    2: "phases.phase2.phase2_persist",
}

PHASE_NAMES: Dict[int, str] = {
    0: "input_preparation",
    1: "crawl_and_extract",
    2: "persistence_and_reporting",
}

LAST_PHASE = max(PHASE_MODULES)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
DEFAULT_ACCEPT = "text/html,application/xhtml+xml"

# Environment overrides understood by PipelineConfig.from_env().
ENV_PREFIX = "CRAWL_"


@dataclass(frozen=True)
class PipelineConfig:
    # -------------------------
    # Storage / runner (storage.py, pipeline_runner.py)
    # -------------------------
    max_rows: Optional[int] = None
    output_dir: Path = Path("output")

    # -------------------------
    # Crawl (crawler.py, phase 1)
    # -------------------------
    # Stop early once this many on-domain emails were found for a site.
    crawl_min_emails: int = 50
    # Max pages fetched per site (failed fetches count too).
    crawl_page_limit: int = 100
    # None means unbounded; the walk is iterative so depth only limits scope.
    crawl_max_depth: Optional[int] = None
    crawl_enable_search_fallback: bool = True
    crawl_global_concurrency: int = 5
    crawl_max_bytes_per_page: int = 2_000_000

    # -------------------------
    # Networking (fetcher.py)
    # -------------------------
    fetch_attempts: int = 2
    fetch_retry_delay_s: float = 1.0
    http_timeout_s: float = 10.0
    http_max_keepalive_connections: int = 20
    http_max_connections: int = 50
    http_user_agent: str = DEFAULT_USER_AGENT
    http_accept: str = DEFAULT_ACCEPT
    http_verify_ssl: bool = True

    # -------------------------
    # Seed fallback (seed_policy.py, search.py)
    # -------------------------
    bypass_domains: Tuple[str, ...] = ("example.com", "example.org", "example.net")
    search_query_template: str = "{company_name} official website"
    search_max_results: int = 10
    search_region: str = "wt-wt"

    # -------------------------
    # HTTP wrapper (api.py)
    # -------------------------
    api_page_limit: int = 10
    api_min_emails: int = 1

    # -------------------------
    # Phase 2 (persistence + reporting)
    # -------------------------
    phase2_results_filename: str = "final_results.json"
    phase2_metrics_filename: str = "metrics.json"
    phase2_write_csv: bool = True
    phase2_csv_filename: str = "final_results.csv"

    # -------------------------
    # Assets
    # -------------------------
    assets_dir: Path = Path("assets")

    def phase_assets_dir(self, phase: int) -> Path:
        return self.assets_dir / f"phase{int(phase)}"

    def phase_asset_path(self, phase: int, filename: str) -> Path:
        return self.phase_assets_dir(phase) / filename

    @classmethod
    def from_env(cls, **overrides) -> "PipelineConfig":
        """
        Build a config from CRAWL_* environment variables (e.g. CRAWL_PAGE_LIMIT,
        CRAWL_FETCH_ATTEMPTS). Field names map to env names by dropping a leading
        "crawl_" and upper-casing; explicit keyword overrides win.

        Only scalar fields are read from the environment.
        """
        base = cls()
        values = {}
        for f in fields(cls):
            name = f.name[len("crawl_"):] if f.name.startswith("crawl_") else f.name
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is None or raw.strip() == "":
                continue
            current = getattr(base, f.name)
            values[f.name] = _coerce_env_value(raw.strip(), current, f.name)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return replace(base, **values)


def _coerce_env_value(raw: str, current: object, name: str) -> object:
    if isinstance(current, bool):
        return raw.lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    if isinstance(current, Path):
        return Path(raw)
    if isinstance(current, tuple):
        return tuple(x.strip().lower() for x in raw.split(",") if x.strip())
    if current is None and name in ("crawl_max_depth", "max_rows"):
        return int(raw)
    return raw
