from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from config import PipelineConfig
from schemas import Record
from storage import save_final_csv, save_final_json, save_metrics

logger = logging.getLogger("Phase 2")


def compute_metrics(records: List[Record]) -> Dict[str, Any]:
    """
    Run metrics:
      - success_rate: share of crawlable records with at least one email
      - phone_rate: same for phones
      - status / crawl_status counts
      - avg_crawl_latency_s over records that were crawled
    """
    n = len(records)
    status_counts: Dict[str, int] = {}
    crawl_status_counts: Dict[str, int] = {}
    latencies: List[float] = []

    for r in records:
        status_counts[r.status] = status_counts.get(r.status, 0) + 1
        crawl_status_counts[r.crawl_status] = crawl_status_counts.get(r.crawl_status, 0) + 1
        lat = r.debug.get("phase1_latency_s")
        if isinstance(lat, (int, float)):
            latencies.append(float(lat))

    crawlable = [r for r in records if not r.skipped]
    with_emails = sum(1 for r in crawlable if r.emails)
    with_phones = sum(1 for r in crawlable if r.phones)
    denom = len(crawlable)

    return {
        "n_records": n,
        "n_skipped": n - denom,
        "success_count": with_emails,
        "success_rate": (with_emails / denom) if denom else 0.0,
        "phone_rate": (with_phones / denom) if denom else 0.0,
        "status_counts": status_counts,
        "crawl_status_counts": crawl_status_counts,
        "avg_crawl_latency_s": (sum(latencies) / len(latencies)) if latencies else 0.0,
    }


def run_phase(records: List[Record], cfg: PipelineConfig) -> List[Record]:
    """
    Phase 2: Persistence and Reporting

    Task 2.1: Store Result
      - final_results.json: the input records with domain/emails/phones added
      - final_results.csv (optional)
    Task 2.2: Metrics
      - metrics.json
    """
    output_dir = Path(cfg.output_dir)
    results_path = output_dir / cfg.phase2_results_filename
    metrics_path = output_dir / cfg.phase2_metrics_filename

    save_final_json(records, results_path)

    if cfg.phase2_write_csv:
        save_final_csv(records, output_dir / cfg.phase2_csv_filename)

    metrics = compute_metrics(records)
    save_metrics(metrics, metrics_path)

    logger.info(
        "Phase 2 wrote results=%s metrics=%s success=%d/%d",
        str(results_path),
        str(metrics_path),
        metrics["success_count"],
        metrics["n_records"] - metrics["n_skipped"],
    )
    return records
