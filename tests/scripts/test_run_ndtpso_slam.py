"""Smoke tests for the NDT-PSO replay script.

Runs scripts/run_ndtpso_slam.py in a subprocess on a short synthetic
sequence and checks the machine-readable [NDTPSO_SUMMARY] JSON line.
Uses the Agg backend to avoid display requirements.

Author: Li-Ta Hsu
"""

import json
import os
import re
import subprocess
import sys
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Dict, Optional


def parse_summary(stdout: str) -> Optional[Dict[str, Any]]:
    """Parse the [NDTPSO_SUMMARY] JSON line from script output."""
    match = re.search(r"\[NDTPSO_SUMMARY\]\s*(\{.*\})", stdout)
    if not match:
        return None
    try:
        return json.loads(match.group(1))
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed NDTPSO_SUMMARY JSON: {e}")


SMALL_CONFIG = {
    "wait_for_tf": True,
    "bootstrap_timeout": 1.0,
    "ndtpso": {
        "cell_side": 0.5,
        "frame_size": 30.0,
        "pso": {"population": 30, "iterations": 40, "num_threads": 2},
    },
}


class TestRunNDTPSOSlam(unittest.TestCase):
    """The replay script runs end to end and reports its results."""

    def setUp(self):
        self.python_exe = sys.executable
        self.workspace_root = Path(__file__).parent.parent.parent
        self.script_path = self.workspace_root / "scripts" / "run_ndtpso_slam.py"
        self.assertTrue(self.script_path.exists(), f"Script not found: {self.script_path}")

        self.env = os.environ.copy()
        self.env.update({
            "MPLBACKEND": "Agg",
            "PYTHONPATH": str(self.workspace_root),
        })

    def run_script(self, *args, timeout=120):
        return subprocess.run(
            [self.python_exe, str(self.script_path), *args],
            cwd=self.workspace_root,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=self.env,
        )

    def test_synthetic_run_with_export(self):
        with TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "ndtpso.json"
            config_path.write_text(json.dumps(SMALL_CONFIG))
            out_dir = Path(tmp) / "out"

            result = self.run_script(
                "--config", str(config_path),
                "--output-dir", str(out_dir),
                "--n-scans", "20",
                "--num-rays", "180",
                "--quiet",
            )
            self.assertEqual(
                result.returncode, 0,
                f"Script failed with stderr:\n{result.stderr}",
            )
            self.assertIn("SCAN MATCHING COMPLETE", result.stdout)

            summary = parse_summary(result.stdout)
            self.assertIsNotNone(summary, "Missing [NDTPSO_SUMMARY] line")
            self.assertEqual(summary["n_scans"], 20)
            self.assertEqual(summary["n_cycles"], 20)
            self.assertEqual(summary["n_poses"], 20)
            self.assertGreater(summary["n_informative_cells"], 0)
            self.assertLess(summary["position_rmse"], 0.5)

            exported = [Path(p) for p in summary["exported"]]
            self.assertEqual(len(exported), 3)
            for path in exported:
                self.assertTrue(path.exists(), f"Missing export {path}")

            self.assertEqual(len(summary["figures"]), 1)
            self.assertTrue(Path(summary["figures"][0]).exists())

    def test_no_export(self):
        with TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "ndtpso.json"
            config_path.write_text(json.dumps(SMALL_CONFIG))
            result = self.run_script(
                "--config", str(config_path),
                "--output-dir", tmp,
                "--n-scans", "5",
                "--num-rays", "90",
                "--no-export",
                "--quiet",
            )
            self.assertEqual(result.returncode, 0, result.stderr)
            summary = parse_summary(result.stdout)
            self.assertEqual(summary["exported"], [])

    def test_invalid_config_fails(self):
        with TemporaryDirectory() as tmp:
            config_path = Path(tmp) / "bad.json"
            config_path.write_text(json.dumps({"ndtpso": {"cell_side": -1.0}}))
            result = self.run_script("--config", str(config_path), "--quiet")
            self.assertNotEqual(result.returncode, 0)
            self.assertIn("Error", result.stderr)
            self.assertIsNone(parse_summary(result.stdout))


if __name__ == "__main__":
    unittest.main()
