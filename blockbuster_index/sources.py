from __future__ import annotations

from pathlib import Path
from typing import Dict

import pandas as pd
import requests


def _to_state_map(df: pd.DataFrame, value_col: str, source: str) -> Dict[str, float]:
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    if "state" not in df.columns or value_col not in df.columns:
        raise ValueError(f"{source} must have 'state' and '{value_col}' columns")

    df["state"] = df["state"].astype(str).str.strip().str.upper()
    df[value_col] = pd.to_numeric(df[value_col], errors="coerce")
    bad = df[df[value_col].isna()]
    if not bad.empty:
        raise ValueError(f"{source}: non-numeric {value_col} for {', '.join(bad['state'].tolist())}")
    if df["state"].duplicated().any():
        dups = sorted(df.loc[df["state"].duplicated(), "state"].unique())
        raise ValueError(f"{source}: duplicate states {', '.join(dups)}")
    return {row["state"]: float(row[value_col]) for _, row in df.iterrows()}


def load_counts_csv(path: Path) -> Dict[str, float]:
    """Daily per-state counts from a ``state,value`` CSV."""
    return _to_state_map(pd.read_csv(path), "value", str(path))


def load_workforce_csv(path: Path) -> Dict[str, float]:
    """Workforce sizes from a ``state,workforce`` CSV."""
    return _to_state_map(pd.read_csv(path), "workforce", str(path))


def load_scores_csv(path: Path) -> Dict[str, float]:
    """Per-state scores from a ``state,score`` CSV."""
    return _to_state_map(pd.read_csv(path), "score", str(path))


def fetch_counts_json(url: str, timeout: float = 60) -> Dict[str, float]:
    """Counts published as a JSON object ``{"CA": 12, ...}``."""
    try:
        r = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise RuntimeError(f"Download failed: {url} ({exc})") from exc
    if not r.ok:
        raise RuntimeError(f"Download failed: {url} (status {r.status_code})")
    try:
        doc = r.json()
    except ValueError as exc:
        raise ValueError(f"{url} did not return JSON") from exc
    if not isinstance(doc, dict):
        raise ValueError(f"{url} must return a JSON object of state -> count")
    df = pd.DataFrame({"state": list(doc.keys()), "value": list(doc.values())})
    return _to_state_map(df, "value", url)


def load_counts(source: str) -> Dict[str, float]:
    if source.startswith(("http://", "https://")):
        return fetch_counts_json(source)
    return load_counts_csv(Path(source))
