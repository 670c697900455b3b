from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from config import PipelineConfig
from schemas import Record

logger = logging.getLogger("Phase 0")

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def seed_url_from_website(website: Optional[str]) -> Tuple[Optional[str], str]:
    """
    Turn a record's website value into a crawlable seed URL.

    Returns:
      (seed_url, reason)

    URLs without an http:// or https:// scheme are assumed to be http://.
    Validity of the URL itself is judged later by the crawler.
    """
    s = (website or "").strip()
    if not s:
        return None, "missing_website"
    if _SCHEME_RE.match(s):
        return s, "kept"
    return f"http://{s}", "scheme_added"


def run_phase(records: List[Record], cfg: PipelineConfig) -> List[Record]:
    """
    Phase 0: Input preparation (deterministic)

    Outputs (prepared records):
      - record.seed_url
      - record.status = "prepared"
      - record.debug["phase0_reason"]  ("kept" | "scheme_added")

    Outputs (skipped records):
      - record.status = "skipped_missing_website" | "skipped_invalid_record"
      - record.debug["phase0_reason"] = "missing_website" | "invalid_record"

    Notes:
      - Skipped records stay in the stream; they are passed through to the
        final output unmodified.
    """
    skipped = 0

    for r in records:
        r.seed_url = None

        if not isinstance(r.source, dict):
            r.debug["phase0_reason"] = "invalid_record"
            r.status = "skipped_invalid_record"
            skipped += 1
            continue

        seed_url, reason = seed_url_from_website(r.website)
        r.debug["phase0_reason"] = reason

        if seed_url is None:
            logger.error("Skipping record %s - Missing 'website' field", r.record_id)
            r.status = "skipped_missing_website"
            skipped += 1
            continue

        r.seed_url = seed_url
        r.status = "prepared"

    logger.info("Phase 0 complete: input=%d prepared=%d skipped=%d", len(records), len(records) - skipped, skipped)
    return records
