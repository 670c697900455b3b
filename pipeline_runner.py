from __future__ import annotations

import argparse
import importlib
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv

from config import LAST_PHASE, PHASE_MODULES, PHASE_NAMES, PipelineConfig
from schemas import Record
from storage import (
    load_input_rows,
    load_phase,
    records_from_rows,
    save_final_json,
    save_metrics,
    save_phase,
)

logger = logging.getLogger("Main")


def _import_phase_runner(phase: int) -> Callable[[List[Record], PipelineConfig], List[Record]]:
    """
    Each phase module should expose:
        def run_phase(records: list[Record], cfg: PipelineConfig) -> list[Record]
    """
    mod_name = PHASE_MODULES.get(phase)
    if not mod_name:
        raise ValueError(f"No module configured for phase {phase}")

    try:
        mod = importlib.import_module(mod_name)
    except ModuleNotFoundError as e:
        raise ModuleNotFoundError(
            f"Phase {phase} module not found: '{mod_name}'.\n"
            f"Create file: {mod_name.replace('.', '/')}.py\n"
            f"and define: run_phase(records, cfg) -> records"
        ) from e

    if not hasattr(mod, "run_phase"):
        raise AttributeError(
            f"Phase {phase} module '{mod_name}' is missing function 'run_phase(records, cfg)'."
        )
    return getattr(mod, "run_phase")


def _compute_basic_metrics(records: List[Record], phase_timings: dict) -> dict:
    total = len(records)
    status_counts: dict[str, int] = {}
    with_emails = 0

    for r in records:
        status_counts[r.status] = status_counts.get(r.status, 0) + 1
        if r.emails:
            with_emails += 1

    return {
        "total_records": total,
        "status_counts": status_counts,
        "records_with_emails": with_emails,
        "phase_timings_seconds": phase_timings,
    }


def _find_last_completed_phase(output_dir: Path) -> int:
    """
    Return the highest phase index with an existing checkpoint file.
    Returns -1 if none exist.
    """
    last = -1
    for p in range(0, LAST_PHASE + 1):
        if (output_dir / f"phase{p}.jsonl").exists():
            last = p
    return last


def run_pipeline(
        input_path: Path,
        output_dir: Path,
        phase: str,
        cfg: PipelineConfig,
        final_json: Path | None,
        *,
        start_phase: Optional[int] = None,
        resume: bool = False,
) -> List[Record]:
    output_dir.mkdir(parents=True, exist_ok=True)

    running_all = (phase == "all")
    if running_all:
        if resume:
            last = _find_last_completed_phase(output_dir)
            if last >= 0:
                start = min(last + 1, LAST_PHASE)
                logger.info("Resume enabled. Last completed phase=%d -> starting from phase=%d", last, start)
                start_phase = start
            else:
                logger.info("Resume enabled but no checkpoints found. Starting from phase 0.")
                start_phase = 0
        else:
            start_phase = 0 if start_phase is None else start_phase

        if start_phase < 0 or start_phase > LAST_PHASE:
            raise ValueError(f"--start-phase must be between 0 and {LAST_PHASE}")
        phases = list(range(start_phase, LAST_PHASE + 1))
    else:
        p = int(phase)
        if p < 0 or p > LAST_PHASE:
            raise ValueError(f"--phase must be 'all' or a single phase number 0..{LAST_PHASE}")
        phases = [p]

    records: List[Record] = []
    phase_timings: dict = {}

    for p in phases:
        phase_name = PHASE_NAMES.get(p, f"phase{p}")
        logger.info("=== Running Phase %s: %s ===", p, phase_name)

        if p == 0:
            rows = load_input_rows(input_path, cfg)
            logger.debug("Input loaded: %s", input_path)
            records = records_from_rows(rows)
            logger.debug("Records loaded: %d", len(records))
        else:
            if not records:
                prev_ckpt = output_dir / f"phase{p - 1}.jsonl"
                if not prev_ckpt.exists():
                    raise FileNotFoundError(
                        f"Missing required checkpoint for phase {p}: {prev_ckpt}. "
                        f"Run phase {p - 1} first, or run --phase all."
                    )
                records = load_phase(output_dir, p - 1)
                logger.debug("Loaded phase %d checkpoint: %d records", p - 1, len(records))

        runner = _import_phase_runner(p)

        t0 = time.perf_counter()
        records = runner(records, cfg)
        dt = time.perf_counter() - t0
        phase_timings[f"phase{p}_{phase_name}"] = dt
        logger.debug("Phase %d took: %.4fs", p, dt)

        save_phase(records, output_dir, p)
        logger.info("Saved checkpoint: %s", output_dir / f"phase{p}.jsonl")

        if not running_all:
            save_metrics(_compute_basic_metrics(records, {f"phase{p}_{phase_name}": dt}),
                         output_dir / f"metrics_phase{p}.json")

    # If the persistence phase ran, it owns final_results.* and metrics.json.
    if LAST_PHASE not in phases:
        if final_json is None:
            final_json = output_dir / "results.json"
        save_final_json(records, final_json)
        logger.info("Saved final JSON: %s", final_json)

    runner_metrics = _compute_basic_metrics(records, phase_timings)
    save_metrics(runner_metrics, output_dir / "runner_metrics.json")
    return records


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Company website contact crawler (emails and phones).")
    parser.add_argument("--input", type=str, required=True, help="Path to input JSON array (or CSV)")
    parser.add_argument("--output-dir", type=str, default="output", help="Directory for checkpoints and outputs")
    parser.add_argument(
        "--phase",
        type=str,
        default="all",
        help=f'Phase to run: "all" or a single phase number 0..{LAST_PHASE}',
    )
    parser.add_argument(
        "--start-phase",
        type=int,
        default=None,
        help="When --phase all: start from this phase. Requires phase{start-1}.jsonl if start>0.",
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="When --phase all: auto-detect last completed phase checkpoint and continue from the next phase.",
    )
    parser.add_argument("--final-json", type=str, default=None,
                        help="Where to write results when the persistence phase does not run")
    parser.add_argument("--page-limit", type=int, default=None, help="Max pages fetched per site")
    parser.add_argument("--min-emails", type=int, default=None, help="Stop a site once this many emails are found")
    parser.add_argument("--concurrency", type=int, default=None, help="Sites crawled at the same time")
    parser.add_argument("--max-rows", type=int, default=None, help="Only process the first N input records")
    parser.add_argument(
        "--no-search-fallback",
        action="store_true",
        help="Crawl placeholder seeds as-is instead of looking the company up",
    )
    parser.add_argument("--log-level", type=str, default="INFO", help="DEBUG/INFO/WARNING/ERROR")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()

    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    input_path = Path(args.input)
    output_dir = Path(args.output_dir)
    final_json = Path(args.final_json) if args.final_json else None

    cfg = PipelineConfig.from_env(
        output_dir=output_dir,
        crawl_page_limit=args.page_limit,
        crawl_min_emails=args.min_emails,
        crawl_global_concurrency=args.concurrency,
        max_rows=args.max_rows,
        crawl_enable_search_fallback=False if args.no_search_fallback else None,
    )

    run_pipeline(
        input_path=input_path,
        output_dir=output_dir,
        phase=args.phase,
        cfg=cfg,
        final_json=final_json,
        start_phase=args.start_phase,
        resume=args.resume,
    )


if __name__ == "__main__":
    main()
