import io
import json
import os
import subprocess
import sys
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

import pandas as pd

from blockbuster_index import cli
from blockbuster_index.storage import load_aggregates
from blockbuster_index.utils import SQLITE_PATH_ENV


def _write_counts(path: Path, counts: dict) -> Path:
    pd.DataFrame({"state": list(counts), "value": list(counts.values())}).to_csv(path, index=False)
    return path


def _write_scores(path: Path, scores: dict) -> Path:
    pd.DataFrame({"state": list(scores), "score": list(scores.values())}).to_csv(path, index=False)
    return path


class TestCli(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)

        env = mock.patch.dict(os.environ)
        env.start()
        self.addCleanup(env.stop)
        os.environ.pop(SQLITE_PATH_ENV, None)

        logging_patch = mock.patch.object(cli, "configure_logging")
        logging_patch.start()
        self.addCleanup(logging_patch.stop)

        self.cfg = self.tmp / "config.yaml"
        self.cfg.write_text(
            f"storage:\n  data_dir: {self.tmp.as_posix()}\n  sqlite_path: {(self.tmp / 'db' / 'bbi.sqlite').as_posix()}\n"
            "window:\n  size_days: 90\n"
            "index:\n  version: test\n  weights:\n    AMAZON: 0.6\n    CENSUS: 0.4\n  inverted: [CENSUS]\n"
            "states: [CA, TX, NY]\n",
            encoding="utf-8",
        )
        self.out = self.tmp / "out"

    def _run(self, *argv: str) -> int:
        with redirect_stdout(io.StringIO()):
            return cli.main(["--config", str(self.cfg), *argv])

    def _update(self, counts: Path, date: str) -> pd.DataFrame:
        rc = self._run("update", "--signal", "walmart", "--counts", str(counts), "--date", date, "--out", str(self.out))
        self.assertEqual(rc, 0)
        return pd.read_csv(self.out / "walmart_windowed.csv")

    def test_update_accumulates_days(self) -> None:
        day1 = _write_counts(self.tmp / "day1.csv", {"CA": 10, "TX": 50})
        day2 = _write_counts(self.tmp / "day2.csv", {"CA": 20, "TX": 51})

        first = self._update(day1, "2024-01-01")
        self.assertEqual(first["state"].tolist(), ["CA", "TX", "NY"])
        self.assertEqual(first["windowed_average"].tolist(), [10, 50, 0])

        second = self._update(day2, "2024-01-02")
        self.assertEqual(second["windowed_average"].tolist(), [15, 51, 0])

    def test_rerunning_a_day_does_not_double_count(self) -> None:
        day1 = _write_counts(self.tmp / "day1.csv", {"CA": 10, "TX": 50})
        self._update(day1, "2024-01-01")
        self._update(day1, "2024-01-01")

        day2 = _write_counts(self.tmp / "day2.csv", {"CA": 20, "TX": 50})
        out = self._update(day2, "2024-01-02")
        self.assertEqual(out["windowed_average"].tolist(), [15, 50, 0])

    def test_failed_day_is_applied_on_rerun(self) -> None:
        self._update(_write_counts(self.tmp / "day1.csv", {"CA": 10, "TX": 50}), "2024-01-01")
        day2 = _write_counts(self.tmp / "day2.csv", {"CA": 20, "TX": 51})

        bad_wf = self.tmp / "bad_wf.csv"
        bad_wf.write_text("state,workforce\nCA,abc\nTX,1000\n", encoding="utf-8")
        good_wf = self.tmp / "wf.csv"
        good_wf.write_text("state,workforce\nCA,1000\nTX,1000\n", encoding="utf-8")

        args = ["update", "--signal", "WALMART", "--counts", str(day2), "--date", "2024-01-02",
                "--normalize", "workforce", "--out", str(self.out)]
        self.assertEqual(self._run(*args, "--workforce", str(bad_wf)), 1)
        self.assertEqual(self._run(*args, "--workforce", str(good_wf)), 0)

        rows = load_aggregates(self.tmp / "db" / "bbi.sqlite", "WALMART")
        self.assertEqual(rows["day_count"].tolist(), [2, 2])
        out = pd.read_csv(self.out / "walmart_windowed.csv")
        self.assertEqual(out["windowed_average"].tolist(), [15, 51, 0])

    def test_workforce_normalizer_needs_workforce(self) -> None:
        day1 = _write_counts(self.tmp / "day1.csv", {"CA": 10})
        rc = self._run("update", "--signal", "AMAZON", "--counts", str(day1), "--normalize", "workforce")
        self.assertEqual(rc, 1)

    def test_scores_band(self) -> None:
        self._update(_write_counts(self.tmp / "day1.csv", {"CA": 10, "TX": 50}), "2024-01-01")
        rc = self._run("scores", "--signal", "WALMART", "--out", str(self.out))
        self.assertEqual(rc, 0)

        df = pd.read_csv(self.out / "walmart_scores.csv").set_index("state")
        self.assertAlmostEqual(df.loc["CA", "score"], 0.08)
        self.assertAlmostEqual(df.loc["TX", "score"], 0.20)
        self.assertAlmostEqual(df.loc["NY", "score"], 0.05)

    def test_outliers_replaced_with_median(self) -> None:
        scores = {s: 10 for s in ["AL", "AK", "AZ", "AR", "CO", "CT", "DE", "FL", "GA"]}
        scores["CA"] = 100
        path = _write_scores(self.tmp / "amazon.csv", scores)

        self.assertEqual(self._run("outliers", "--scores", str(path), "--out", str(self.out)), 0)

        df = pd.read_csv(self.out / "amazon_corrected.csv").set_index("state")
        self.assertTrue(bool(df.loc["CA", "is_outlier"]))
        self.assertEqual(df.loc["CA", "corrected_score"], 10)
        self.assertEqual(int(df["is_outlier"].sum()), 1)

    def test_index_outputs(self) -> None:
        amazon = _write_scores(self.tmp / "amazon.csv", {"CA": 10, "TX": 20})
        census = _write_scores(self.tmp / "census.csv", {"CA": 5, "TX": 10})

        rc = self._run("index", "--signal", f"amazon={amazon}", "--signal", f"CENSUS={census}", "--out", str(self.out))
        self.assertEqual(rc, 0)

        df = pd.read_csv(self.out / "blockbuster_index.csv")
        self.assertEqual(df["state"].tolist(), ["TX", "CA", "NY"])
        self.assertEqual(df["score"].tolist(), [60.0, 40.0, 0.0])

        meta = json.loads((self.out / "blockbuster_index.json").read_text(encoding="utf-8"))
        self.assertEqual(meta["version"], "test")
        self.assertEqual(meta["total_states"], 3)
        self.assertEqual(meta["signal_status"], {"total": 2, "successful": 2, "failed": 0})

    def test_missing_input_returns_error(self) -> None:
        rc = self._run("outliers", "--scores", str(self.tmp / "nope.csv"), "--out", str(self.out))
        self.assertEqual(rc, 1)


class TestCliE2E(unittest.TestCase):
    def test_module_entrypoint(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            tmp_path = Path(tmp)
            cfg = tmp_path / "config.yaml"
            cfg.write_text(
                f"storage:\n  sqlite_path: {(tmp_path / 'bbi.sqlite').as_posix()}\nstates: [CA, TX]\n",
                encoding="utf-8",
            )
            counts = _write_counts(tmp_path / "counts.csv", {"CA": 4, "TX": 8})
            out_dir = tmp_path / "out"

            env = os.environ.copy()
            env.pop(SQLITE_PATH_ENV, None)
            env["PYTHONPATH"] = str(Path.cwd())

            cmd = [
                sys.executable,
                "-m",
                "blockbuster_index",
                "--config",
                str(cfg),
                "update",
                "--signal",
                "BROADBAND",
                "--counts",
                str(counts),
                "--date",
                "2024-03-01",
                "--out",
                str(out_dir),
            ]
            subprocess.check_call(cmd, env=env, cwd=Path.cwd())

            df = pd.read_csv(out_dir / "broadband_windowed.csv")
            self.assertEqual(dict(zip(df["state"], df["windowed_average"])), {"CA": 4, "TX": 8})


if __name__ == "__main__":
    unittest.main()
