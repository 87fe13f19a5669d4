from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "feedlog.cli"]
SAMPLES = ROOT / "sample-data"


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = {k: v for k, v in os.environ.items() if not k.startswith("FEEDLOG_")}
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


class FeedlogCliTests(unittest.TestCase):
    def test_preview_clean_export_returns_exit_0(self):
        proc = run_cli("preview", "sample-data/app_export.csv", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "feedlog.preview")
        self.assertEqual(payload["format"], "canonical_export")
        self.assertEqual((payload["feed_count"], payload["pump_count"]), (3, 1))
        self.assertEqual(payload["errors"], [])
        self.assertEqual(payload["run_summary"]["status"], "ok")

    def test_preview_with_row_errors_returns_exit_3(self):
        proc = run_cli("preview", "sample-data/app_export_with_errors.csv")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("Format: canonical_export", proc.stderr)
        self.assertIn("Row 3: invalid type", proc.stderr)
        self.assertIn("Row 6: duration exceeds maximum", proc.stderr)

    def test_preview_unrecognized_returns_exit_2(self):
        proc = run_cli("preview", "sample-data/unrecognized.csv", "--json")
        self.assertEqual(proc.returncode, 2)
        payload = json.loads(proc.stdout)
        self.assertTrue(payload["fatal"])
        self.assertEqual(payload["session_count"], 0)
        self.assertIn("Unrecognized", payload["errors"][0])

    def test_preview_writes_output_file_and_refuses_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            out = Path(tmpdir) / "preview.json"
            proc = run_cli("preview", "sample-data/pivot_daily.csv", "--output", str(out))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Preview written:", proc.stderr)
            payload = json.loads(out.read_text())
            self.assertEqual(payload["format"], "pivot_daily")
            self.assertEqual(payload["session_count"], 4)

            again = run_cli("preview", "sample-data/pivot_daily.csv", "--output", str(out))
            self.assertEqual(again.returncode, 1)
            self.assertIn("Refusing to overwrite", again.stderr)

    def test_preview_does_not_create_missing_database(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = Path(tmpdir) / "nested" / "missing.db"
            proc = run_cli("preview", "sample-data/vision_response.json", "--db", str(db))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Database not found", proc.stderr)
            self.assertFalse(db.parent.exists())

    def test_preview_missing_file_returns_exit_1(self):
        proc = run_cli("preview", "sample-data/does-not-exist.csv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_import_then_reimport_skips_duplicates(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            first = run_cli("import", "sample-data/legacy_log.csv", "--db", db, "--json")
            self.assertEqual(first.returncode, 6, first.stderr)
            payload = json.loads(first.stdout)
            self.assertEqual(payload["contract"]["name"], "feedlog.import_summary")
            self.assertEqual((payload["imported"], payload["skipped"]), (6, 0))
            self.assertEqual(payload["errors"], ["Row 5: invalid feed amount"])

            second = run_cli("import", "sample-data/legacy_log.csv", "--db", db, "--json")
            payload = json.loads(second.stdout)
            self.assertEqual((payload["imported"], payload["skipped"]), (0, 6))
            self.assertEqual(len(payload["skipped_items"]), 6)

    def test_import_dry_run_leaves_database_untouched(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            proc = run_cli("import", "sample-data/app_export.csv", "--dry-run", env={"FEEDLOG_DB": db})
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Would import: 4", proc.stderr)

            stats = run_cli("stats", "--json", env={"FEEDLOG_DB": db})
            self.assertEqual(stats.returncode, 0, stats.stderr)
            self.assertEqual(json.loads(stats.stdout)["total"], 0)

    def test_import_unrecognized_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            proc = run_cli("import", "sample-data/unrecognized.csv", "--db", db)
            self.assertEqual(proc.returncode, 2)
            self.assertIn("Unrecognized CSV format", proc.stderr)

    def test_vision_response_import_flags_duplicates(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            run_cli("import", "sample-data/app_export.csv", "--db", db)
            proc = run_cli("import", "sample-data/vision_response.json", "--db", db, "--json")
            self.assertEqual(proc.returncode, 6, proc.stderr)
            payload = json.loads(proc.stdout)
            self.assertEqual(payload["format"], "vision_entries")
            self.assertEqual(payload["imported"], 1)
            self.assertEqual([r["has_duplicate"] for r in payload["vision_reviews"]], [True, False, False])
            self.assertEqual(payload["warnings"], ["bottom of page cut off"])

            stats = run_cli("stats", "--db", db, "--json")
            self.assertEqual(json.loads(stats.stdout)["by_source"]["ai_vision"], 1)

    def test_export_backup_and_restore(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            restored_db = str(Path(tmpdir) / "restored.db")
            backup = str(Path(tmpdir) / "backup.json")
            run_cli("import", "sample-data/pivot_daily.csv", "--db", db)

            proc = run_cli("export", "--db", db, "--format", "json", "--output", backup)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Exported 4 sessions", proc.stderr)

            restore = run_cli("import", backup, "--db", restored_db, "--json")
            self.assertEqual(restore.returncode, 0, restore.stderr)
            payload = json.loads(restore.stdout)
            self.assertEqual(payload["format"], "json_backup")
            self.assertEqual(payload["imported"], 4)

    def test_export_csv_to_stdout(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            run_cli("import", "sample-data/app_export.csv", "--db", db)
            proc = run_cli("export", "--db", db)
            self.assertEqual(proc.returncode, 0, proc.stderr)
            lines = proc.stdout.splitlines()
            self.assertTrue(lines[0].startswith('"Date","Time","Type"'))
            self.assertEqual(len(lines), 5)

    def test_undo_removes_imported_sessions(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = str(Path(tmpdir) / "log.db")
            run_cli("import", "sample-data/app_export.csv", "--db", db)
            proc = run_cli("undo", "--db", db, "--source", "imported", "--json")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertEqual(json.loads(proc.stdout)["deleted"], 1)

            stats = run_cli("stats", "--db", db, "--json")
            counts = json.loads(stats.stdout)["by_source"]
            self.assertEqual((counts["manual"], counts["imported"]), (3, 0))

    def test_undo_rejects_bad_after_date(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db = Path(tmpdir) / "log.db"
            run_cli("import", "sample-data/app_export.csv", "--db", str(db))
            proc = run_cli("undo", "--db", str(db), "--after", "last week")
            self.assertEqual(proc.returncode, 1)
            self.assertIn("--after must be YYYY-MM-DD", proc.stderr)

    def test_stats_without_database_returns_exit_1(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            proc = run_cli("stats", "--db", str(Path(tmpdir) / "missing.db"))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Database not found", proc.stderr)

    def test_bad_environment_config_returns_exit_1(self):
        proc = run_cli("preview", "sample-data/app_export.csv", env={"FEEDLOG_MAX_AMOUNT_ML": "lots"})
        self.assertEqual(proc.returncode, 1)
        self.assertIn("FEEDLOG_MAX_AMOUNT_ML must be a number", proc.stderr)

    def test_environment_config_lowers_amount_cap(self):
        proc = run_cli("preview", "sample-data/app_export.csv", "--json", env={"FEEDLOG_MAX_AMOUNT_ML": "100"})
        self.assertEqual(proc.returncode, 3)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["errors"], ["Row 2: amount exceeds maximum", "Row 3: amount exceeds maximum"])

    def test_unknown_command_returns_exit_1(self):
        proc = run_cli("diagnose", "sample-data/app_export.csv")
        self.assertEqual(proc.returncode, 1)

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), "feedlog 0.1.0")


if __name__ == "__main__":
    unittest.main()
