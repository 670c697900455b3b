from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import COL_DOMAIN, COL_EMAILS, COL_PHONES


class CrawlTarget(BaseModel):
    """Input unit of a single site crawl."""

    model_config = ConfigDict(frozen=True)

    seed_url: str
    company_name: Optional[str] = None


class CrawlResult(BaseModel):
    domain: str
    emails: List[str] = Field(default_factory=list)
    phones: List[str] = Field(default_factory=list)


class Record(BaseModel):
    """
    Record is the evolving state object that each phase reads and writes.

    The caller's row is held verbatim in `source` and never written to by the
    pipeline. Everything else is pipeline state, so input keys such as
    "status" or "debug" cannot collide with it.

    Lifecycle:
      new -> skipped_missing_website | skipped_invalid_record | prepared -> crawled | failed
    """

    record_id: str = ""
    source: Any = Field(default_factory=dict)

    # Cleaned copies of the caller's website/companyName
    website: Optional[str] = None
    company_name: Optional[str] = None

    # Outputs
    domain: str = ""
    emails: List[str] = Field(default_factory=list)
    phones: List[str] = Field(default_factory=list)

    # Pipeline state
    seed_url: Optional[str] = None
    status: str = "new"
    # success/no_contacts/invalid_url/seed_unresolved/failed/not_started
    crawl_status: str = "not_started"

    debug: Dict[str, Any] = Field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return self.status.startswith("skipped")

    def to_output(self) -> Any:
        """
        The caller-facing record: the original row plus domain/emails/phones.
        Skipped records come back exactly as they were supplied.
        """
        if self.skipped or not isinstance(self.source, dict):
            return self.source

        out: Dict[str, Any] = dict(self.source)
        out[COL_DOMAIN] = self.domain
        out[COL_EMAILS] = list(self.emails)
        out[COL_PHONES] = list(self.phones)
        return out
