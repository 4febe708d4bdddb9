from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

import pandas as pd
import structlog

from .index import calculate_blockbuster_index, index_to_frame
from .log import configure_logging
from .orchestrate import orchestrate_signal
from .scoring.normalize import (
    calculate_inverted_scores,
    calculate_positive_scores,
    jobs_per_thousand_workers,
    workforce_normalized_inverted_scores,
    workforce_normalized_scores,
)
from .scoring.outliers import detect_and_correct_outliers, log_outlier_analysis
from .sources import load_counts, load_scores_csv, load_workforce_csv
from .storage import SQLiteObservationStore, SQLiteWindowStore
from .utils import Config, ensure_dirs, load_config, parse_iso_date, start_of_day_timestamp
from .window.aggregate import WindowAggregate
from .window.service import SlidingWindowService

logger = structlog.get_logger()

NORMALIZERS: Dict[str, Callable[[Mapping[str, float], Mapping[str, float]], Dict[str, float]]] = {
    "positive": lambda counts, _wf: calculate_positive_scores(counts),
    "inverted": lambda counts, _wf: calculate_inverted_scores(counts),
    "workforce": workforce_normalized_scores,
    "workforce-inverted": workforce_normalized_inverted_scores,
    "per-thousand": jobs_per_thousand_workers,
}
WORKFORCE_NORMALIZERS = {"workforce", "workforce-inverted", "per-thousand"}


def _signal_name(raw: str) -> str:
    name = str(raw).strip().upper()
    if not name:
        raise ValueError("Signal name must not be empty.")
    return name


def _window_service(cfg: Config, signal: str) -> tuple[SlidingWindowService, SQLiteObservationStore]:
    observations = SQLiteObservationStore(cfg.sqlite_path, signal)
    service = SlidingWindowService(
        window_store=SQLiteWindowStore(cfg.sqlite_path, signal),
        get_old_day_value=observations.get_old_day_value,
        states=cfg.states,
        window_size_days=cfg.window_size_days,
    )
    return service, observations


class _RecordingWindow:
    """Records a day's observation only once its window update went through.

    A rerun of a failed day then still finds the states it has to apply.
    """

    def __init__(self, service: SlidingWindowService, observations: SQLiteObservationStore) -> None:
        self.service = service
        self.observations = observations

    def update_window(self, state: str, new_value: float, new_timestamp: int) -> WindowAggregate:
        aggregate = self.service.update_window(state, new_value, new_timestamp)
        self.observations.record(state, new_timestamp, new_value)
        return aggregate

    def get_windowed_scores(self) -> Dict[str, int]:
        return self.service.get_windowed_scores()


def _parse_states(raw: Optional[str], default: List[str]) -> List[str]:
    if not raw:
        return list(default)
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def cmd_update(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    ensure_dirs(cfg)
    signal = _signal_name(args.signal)
    if args.normalize in WORKFORCE_NORMALIZERS and not args.workforce:
        raise ValueError(f"--normalize {args.normalize} needs --workforce.")

    day = parse_iso_date(args.date)
    timestamp = start_of_day_timestamp(day)
    service, observations = _window_service(cfg, signal)

    def _scrape(ts: int) -> Dict[str, float]:
        counts = load_counts(args.counts)
        fresh: Dict[str, float] = {}
        for state, value in counts.items():
            if observations.exists(state, ts * 1000):
                # Re-running a day must not count it twice in the window.
                logger.info("observation_exists", signal=signal, state=state, timestamp=ts)
                continue
            fresh[state] = value
        return fresh

    def _workforce() -> Dict[str, float]:
        return load_workforce_csv(Path(args.workforce)) if args.workforce else {}

    windowed = orchestrate_signal(
        scraper=_scrape,
        window_service=_RecordingWindow(service, observations),
        get_workforce_data=_workforce,
        normalize=NORMALIZERS[args.normalize],
        timestamp=timestamp,
    )

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{signal.lower()}_windowed.csv"
    df = pd.DataFrame({"state": list(windowed.keys()), "windowed_average": list(windowed.values())})
    df.to_csv(out_path, index=False)
    print(f"Wrote: {out_path}")


def cmd_scores(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    signal = _signal_name(args.signal)
    service, _ = _window_service(cfg, signal)
    states = _parse_states(args.states, cfg.states)

    windowed = service.get_windowed_scores(states)
    band = calculate_inverted_scores(windowed) if args.inverted else calculate_positive_scores(windowed)
    df = pd.DataFrame(
        {
            "state": states,
            "windowed_average": [windowed[s] for s in states],
            "score": [band[s] for s in states],
        }
    )
    if args.out:
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        out_path = out_dir / f"{signal.lower()}_scores.csv"
        df.to_csv(out_path, index=False)
        print(f"Wrote: {out_path}")
    else:
        print(df.to_string(index=False))


def cmd_outliers(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    scores = load_scores_csv(Path(args.scores))
    threshold = args.threshold if args.threshold is not None else cfg.outlier_threshold

    analysis = detect_and_correct_outliers(scores, threshold=threshold)
    log_outlier_analysis(analysis, Path(args.scores).stem)

    flagged = set(analysis.outliers)
    df = pd.DataFrame(
        {
            "state": list(scores.keys()),
            "score": list(scores.values()),
            "corrected_score": [analysis.corrected_scores[s] for s in scores],
            "is_outlier": [s in flagged for s in scores],
        }
    )
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / f"{Path(args.scores).stem}_corrected.csv"
    df.to_csv(out_path, index=False)
    print(f"Wrote: {out_path}")


def _parse_signal_args(values: List[str]) -> Dict[str, Path]:
    out: Dict[str, Path] = {}
    for item in values:
        if "=" not in item:
            raise ValueError(f"Expected NAME=PATH, got '{item}'")
        name, path = item.split("=", 1)
        out[_signal_name(name)] = Path(path)
    return out


def cmd_index(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    inputs = _parse_signal_args(args.signal or [])
    if not inputs:
        raise ValueError("Pass at least one --signal NAME=PATH.")

    results = {name: load_scores_csv(path) for name, path in inputs.items()}
    index = calculate_blockbuster_index(
        results,
        weights=cfg.weights,
        inverted=cfg.inverted,
        states=cfg.states,
        version=args.version or cfg.index_version,
    )
    if index.missing_signals:
        logger.warning("index_signals_missing", missing=index.missing_signals)

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    index_path = out_dir / "blockbuster_index.csv"
    index_to_frame(index).to_csv(index_path, index=False)

    meta = {
        "calculated_at": index.calculated_at,
        "version": index.version,
        "total_states": index.total_states,
        "signal_status": {
            "total": index.signals_total,
            "successful": index.signals_successful,
            "failed": index.signals_total - index.signals_successful,
        },
        "missing_signals": index.missing_signals,
    }
    (out_dir / "blockbuster_index.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
    print(f"Wrote: {index_path}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="blockbuster_index", description="Blockbuster Index signal windows and scoring")
    p.add_argument("--config", default=None, help="Optional path to config.yaml.")
    p.add_argument("--verbose", action="store_true", help="Debug-level logging.")
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines.")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_up = sub.add_parser("update", help="Record one day of counts and update the sliding windows.")
    p_up.add_argument("--signal", required=True, help="Signal name, e.g. WALMART.")
    p_up.add_argument("--counts", required=True, help="state,value CSV path or JSON URL.")
    p_up.add_argument("--date", default=None, help="Observation date (YYYY-MM-DD, default: today UTC).")
    p_up.add_argument("--workforce", default=None, help="state,workforce CSV for workforce normalization.")
    p_up.add_argument("--normalize", choices=sorted(NORMALIZERS), default="positive",
                      help="One-shot normalization logged alongside the windowed result.")
    p_up.add_argument("--out", default="outputs", help="Output directory.")
    p_up.set_defaults(func=cmd_update)

    p_sc = sub.add_parser("scores", help="Show windowed averages and band scores.")
    p_sc.add_argument("--signal", required=True, help="Signal name.")
    p_sc.add_argument("--states", default=None, help="Comma-separated states (default: all configured).")
    p_sc.add_argument("--inverted", action="store_true", help="Use the inverted band (higher count, lower score).")
    p_sc.add_argument("--out", default=None, help="Write CSV here instead of printing.")
    p_sc.set_defaults(func=cmd_scores)

    p_out = sub.add_parser("outliers", help="Replace z-score outliers with the median.")
    p_out.add_argument("--scores", required=True, help="state,score CSV.")
    p_out.add_argument("--threshold", type=float, default=None, help="z-score threshold (default from config).")
    p_out.add_argument("--out", default="outputs", help="Output directory.")
    p_out.set_defaults(func=cmd_outliers)

    p_idx = sub.add_parser("index", help="Combine signal scores into the weighted index.")
    p_idx.add_argument("--signal", action="append", help="NAME=PATH of a state,score CSV; repeatable.")
    p_idx.add_argument("--version", default=None, help="Version label stored in the metadata.")
    p_idx.add_argument("--out", default="outputs", help="Output directory.")
    p_idx.set_defaults(func=cmd_index)

    return p


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, json_logs=args.json_logs)
    try:
        args.func(args)
    except Exception as exc:
        logger.error("command_failed", command=args.cmd, error=str(exc))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
