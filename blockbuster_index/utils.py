from __future__ import annotations

import os
import math
from decimal import ROUND_HALF_UP, Decimal
import datetime as dt
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

MS_PER_DAY = 24 * 60 * 60 * 1000

STATES: List[str] = [
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL",
    "GA", "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME",
    "MD", "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH",
    "NJ", "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI",
    "SC", "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI",
    "WY",
]

# Composite index weights; they sum to 1.0.
DEFAULT_WEIGHTS: Dict[str, float] = {
    "AMAZON": 0.15,
    "CENSUS": 0.15,
    "BROADBAND": 0.20,
    "WALMART": 0.10,
    "BLS_PHYSICAL": 0.20,
    "BLS_ECOMMERCE": 0.20,
}

# A higher raw value on these signals means *less* digital adoption.
DEFAULT_INVERTED = ["CENSUS", "WALMART", "BLS_PHYSICAL"]

SQLITE_PATH_ENV = "BLOCKBUSTER_SQLITE_PATH"


@dataclass(frozen=True)
class Config:
    data_dir: Path
    sqlite_path: Path

    window_size_days: int
    outlier_threshold: float

    weights: Dict[str, float]
    inverted: List[str]
    index_version: str

    states: List[str]


def _load_yaml(path: Path) -> Optional[Dict[str, Any]]:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)
    if doc is None:
        return None
    if not isinstance(doc, dict):
        raise ValueError(f"{path} must contain a mapping at the top level.")
    return doc


def load_config(config_path: Optional[str] = None) -> Config:
    # Search order:
    # 1) explicit path
    # 2) ./config.yaml
    # 3) defaults
    cfg_file = Path(config_path) if config_path else Path("config.yaml")
    if config_path and not cfg_file.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_file}")
    doc = _load_yaml(cfg_file)

    # Defaults
    data_dir = Path("data")
    sqlite_path = data_dir / "blockbuster.sqlite"
    window_size_days = 90
    outlier_threshold = 2.0
    weights = dict(DEFAULT_WEIGHTS)
    inverted = list(DEFAULT_INVERTED)
    index_version = "dev"
    states = list(STATES)

    if doc:
        storage = doc.get("storage", {}) or {}
        window = doc.get("window", {}) or {}
        outliers = doc.get("outliers", {}) or {}
        index = doc.get("index", {}) or {}

        if "data_dir" in storage:
            data_dir = Path(storage["data_dir"])
            sqlite_path = data_dir / "blockbuster.sqlite"
        if "sqlite_path" in storage:
            sqlite_path = Path(storage["sqlite_path"])

        if "size_days" in window:
            window_size_days = int(window["size_days"])
            if window_size_days < 1:
                raise ValueError("window.size_days must be at least 1.")

        if "threshold" in outliers:
            outlier_threshold = float(outliers["threshold"])

        if isinstance(index.get("weights"), dict):
            weights = {str(k).upper(): float(v) for k, v in index["weights"].items()}
        if isinstance(index.get("inverted"), list):
            inverted = [str(s).upper() for s in index["inverted"]]
        if "version" in index:
            index_version = str(index["version"])

        if isinstance(doc.get("states"), list):
            states = [str(s).strip().upper() for s in doc["states"] if str(s).strip()]

    unknown = [s for s in inverted if s not in weights]
    if unknown:
        raise ValueError(f"index.inverted names signals without a weight: {', '.join(unknown)}")

    env_path = os.environ.get(SQLITE_PATH_ENV)
    if env_path:
        sqlite_path = Path(env_path)

    return Config(
        data_dir=data_dir,
        sqlite_path=sqlite_path,
        window_size_days=window_size_days,
        outlier_threshold=outlier_threshold,
        weights=weights,
        inverted=inverted,
        index_version=index_version,
        states=states,
    )


def ensure_dirs(cfg: Config) -> None:
    cfg.data_dir.mkdir(parents=True, exist_ok=True)
    if cfg.sqlite_path.parent != Path("."):
        cfg.sqlite_path.parent.mkdir(parents=True, exist_ok=True)


def clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves away from -inf (0.5 -> 1, -0.5 -> 0)."""
    return int(math.floor(x + 0.5))


def round_half_up_to(x: float, ndigits: int) -> float:
    """Round to ``ndigits`` decimals with ties going up (0.125 -> 0.13 at 2 digits).

    The float's exact binary value is quantized, so a value stored just below
    a tie rounds down.
    """
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(x).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_iso_date(value: Optional[str]) -> Optional[dt.date]:
    if value is None:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD.") from exc


def start_of_day_timestamp(d: Optional[dt.date] = None) -> int:
    """Epoch seconds of 00:00 UTC on ``d`` (default: today, UTC)."""
    if d is None:
        d = dt.datetime.now(dt.timezone.utc).date()
    midnight = dt.datetime(d.year, d.month, d.day, tzinfo=dt.timezone.utc)
    return int(midnight.timestamp())


def now_ms() -> int:
    return int(dt.datetime.now(dt.timezone.utc).timestamp() * 1000)
