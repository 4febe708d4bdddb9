from __future__ import annotations

import argparse
import datetime as dt
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd


def daily_files(counts_dir: Path, start: dt.date, end: dt.date) -> List[tuple[dt.date, Path]]:
    """Pair each day in [start, end] with ``<counts_dir>/<YYYY-MM-DD>.csv`` when present."""
    if not counts_dir.exists():
        raise FileNotFoundError(f"Missing counts directory {counts_dir}.")
    out = []
    for day in pd.date_range(start, end, freq="D").date:
        path = counts_dir / f"{day.isoformat()}.csv"
        if path.exists():
            out.append((day, path))
    return out


def run_update(signal: str, day: dt.date, path: Path, out_dir: Path, config: Optional[str]) -> None:
    cmd = [sys.executable, "-m", "blockbuster_index"]
    if config:
        cmd += ["--config", config]
    cmd += [
        "update",
        "--signal",
        signal,
        "--counts",
        str(path),
        "--date",
        day.isoformat(),
        "--out",
        str(out_dir),
    ]
    subprocess.run(cmd, check=True)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay daily count files into a signal's sliding window, one update per day."
    )
    parser.add_argument("--signal", required=True, help="Signal name, e.g. WALMART.")
    parser.add_argument("--counts-dir", required=True, help="Directory of <YYYY-MM-DD>.csv files.")
    parser.add_argument("--start", required=True, help="First day (YYYY-MM-DD).")
    parser.add_argument("--end", required=True, help="Last day (YYYY-MM-DD).")
    parser.add_argument("--config", default=None, help="Optional config.yaml.")
    parser.add_argument("--out", default="outputs", help="Output directory.")
    args = parser.parse_args()

    start = dt.date.fromisoformat(args.start)
    end = dt.date.fromisoformat(args.end)
    if end < start:
        raise ValueError("--end must not be before --start.")

    selected = daily_files(Path(args.counts_dir), start, end)
    if not selected:
        print("No daily count files in selected range.")
        return

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    print(
        f"Replaying {len(selected)} days from {selected[0][0].isoformat()} "
        f"to {selected[-1][0].isoformat()} into {args.signal}.",
        flush=True,
    )
    for day, path in selected:
        print(f"- {day.isoformat()}", flush=True)
        run_update(args.signal, day, path, out_dir, args.config)


if __name__ == "__main__":
    main()
