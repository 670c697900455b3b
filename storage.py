from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config import COL_COMPANY_NAME, COL_WEBSITE, PipelineConfig
from schemas import Record

logger = logging.getLogger("Storage")


def _clean_str(x: object) -> Optional[str]:
    if x is None:
        return None
    if isinstance(x, float) and pd.isna(x):
        return None
    s = str(x).strip()
    return s if s else None


def _strip_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Strip whitespace from column names (exported sheets often carry leading spaces)."""
    df = df.copy()
    df.columns = [str(c).strip() for c in df.columns]
    return df


def load_input_rows(path: str | Path, cfg: PipelineConfig) -> List[Dict[str, Any]]:
    """
    Load the batch input.

      - .json: an array of objects (the native format)
      - .csv:  one record per row, all values read as strings
    """
    path = Path(path)
    if path.suffix.lower() == ".csv":
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
        df = _strip_columns(df)
        rows = df.to_dict(orient="records")
    else:
        with path.open("r", encoding="utf-8") as f:
            rows = json.load(f)
        if not isinstance(rows, list):
            raise ValueError(f"Input {path} must contain a JSON array of records")

    if cfg.max_rows is not None:
        rows = rows[: cfg.max_rows]
    return rows


def records_from_rows(rows: Iterable[Any]) -> List[Record]:
    """
    Convert raw input rows into list[Record].

    - record_id is the row index (stable within a run)
    - the row itself is kept untouched in record.source
    - website/companyName are copied out and cleaned to stripped strings or None
    - rows that are not objects are kept and skipped in phase 0
    """
    records: List[Record] = []
    for idx, row in enumerate(rows):
        rec = Record(record_id=str(idx), source=row)
        if isinstance(row, dict):
            rec.website = _clean_str(row.get(COL_WEBSITE))
            rec.company_name = _clean_str(row.get(COL_COMPANY_NAME))
        else:
            logger.error("Record #%d is not an object: %r", idx, row)
        records.append(rec)

    return records


def records_to_dataframe(records: Iterable[Record]) -> pd.DataFrame:
    rows = [r.to_output() for r in records]
    return pd.json_normalize([row for row in rows if isinstance(row, dict)])


def _atomic_write_bytes(dst: Path, data: bytes) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(delete=False, dir=str(dst.parent), suffix=".tmp") as tf:
        tf.write(data)
        tmp_name = tf.name
    os.replace(tmp_name, dst)


def _atomic_write_text(dst: Path, text: str) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=str(dst.parent), suffix=".tmp", encoding="utf-8") as tf:
        tf.write(text)
        tmp_name = tf.name
    os.replace(tmp_name, dst)


def save_phase(records: List[Record], output_dir: str | Path, phase: int) -> Path:
    """
    Save checkpoints as JSONL to preserve nested structure.
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"phase{phase}.jsonl"

    lines: List[str] = []
    for r in records:
        lines.append(json.dumps(r.model_dump(), ensure_ascii=False))
    _atomic_write_text(path, "\n".join(lines) + ("\n" if lines else ""))

    return path


def load_phase(output_dir: str | Path, phase: int) -> List[Record]:
    """
    Load JSONL checkpoint and reconstruct list[Record] with full nested fields.
    """
    path = Path(output_dir) / f"phase{phase}.jsonl"
    records: List[Record] = []

    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            obj = json.loads(line)
            records.append(Record.model_validate(obj))

    return records


def save_final_json(records: List[Record], output_path: str | Path) -> Path:
    """The annotated input records, as one JSON array."""
    output_path = Path(output_path)
    payload = json.dumps([r.to_output() for r in records], ensure_ascii=False, indent=2)
    _atomic_write_text(output_path, payload + "\n")
    return output_path


def save_final_csv(records: List[Record], output_path: str | Path) -> Path:
    """
    Write a human-friendly flat CSV final output (runner convenience output).
    List columns are joined with '; '.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df = records_to_dataframe(records)
    for col in df.columns:
        df[col] = df[col].map(lambda v: "; ".join(str(x) for x in v) if isinstance(v, list) else v)
    df.to_csv(output_path, index=False)
    return output_path


def save_metrics(metrics: dict, output_path: str | Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(metrics, indent=2, sort_keys=True).encode("utf-8")
    _atomic_write_bytes(output_path, payload)
    return output_path
