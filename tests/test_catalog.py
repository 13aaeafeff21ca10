"""Tests for the SQLite and CSV snapshot loaders and the CLI."""

import io
import json
import logging
import subprocess
import sys
import tempfile
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import unittest
from catalog.csv_source import load_snapshot_from_csv
from catalog.sqlite_source import check_connection, insert_snapshot, load_snapshot
from opportunity import opportunity_cli

CLI_SCRIPT = Path(__file__).parent.parent / "src" / "opportunity" / "opportunity_cli.py"

EXTENSIONS = [
    {"id": 1, "name": "Dark Reader", "canonical_url": "https://example.test/1", "users": 5000,
     "rating": 4.6, "rating_votes": 800, "languages": "en, de", "updated_at": "2024-01-02"},
    {"id": 2, "name": "Tab Saver", "users": 1200, "rating": 3.1, "rating_votes": 90, "languages": "en"},
    {"id": 3, "name": "Coupon Finder", "users": -4, "rating": 7.5, "rating_votes": None},
    {"id": 4, "name": "Unrated", "users": 30},
]
CATEGORIES = [{"id": 10, "name": "Productivity"}, {"id": 20, "name": "Shopping"}]
LINKS = [
    {"category_id": 10, "extension_id": 1},
    {"category_id": 10, "extension_id": 2},
    {"category_id": 20, "extension_id": 3},
    {"category_id": 20, "extension_id": 4},
]


class TestSqliteSource(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self._tmp.name) / "catalog.db")
        insert_snapshot(self.db_path, EXTENSIONS, CATEGORIES, LINKS)

    def tearDown(self):
        self._tmp.cleanup()

    def test_load_snapshot(self):
        snapshot = load_snapshot(self.db_path)
        self.assertEqual([e.id for e in snapshot.extensions], [1, 2, 3, 4])
        self.assertEqual(len(snapshot.categories), 2)
        self.assertEqual(snapshot.members_by_category(), {10: [1, 2], 20: [3, 4]})

        first = snapshot.extensions[0]
        self.assertEqual(first.url, "https://example.test/1")
        self.assertEqual(first.languages, "en, de")

    def test_row_coercion(self):
        snapshot = load_snapshot(self.db_path)
        coupon = snapshot.extensions[2]
        self.assertEqual(coupon.users, 0)
        self.assertEqual(coupon.rating, 5.0)
        self.assertEqual(coupon.rating_votes, 0)
        unrated = snapshot.extensions[3]
        self.assertIsNone(unrated.rating)
        self.assertEqual(unrated.languages, "")

    def test_missing_database(self):
        with self.assertRaises(FileNotFoundError):
            load_snapshot(str(Path(self._tmp.name) / "missing.db"))

    def test_check_connection(self):
        health = check_connection(self.db_path)
        self.assertEqual(
            health["row_counts"],
            {"extensions": 4, "categories": 2, "category_extensions": 4},
        )
        self.assertIn("sqlite_version", health)


class TestCsvSource(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        (base / "extensions.csv").write_text(
            "id,name,canonical_url,users,rating,rating_votes,languages,updated_at\n"
            "2,Tab Saver,,1200,3.1,90,en,\n"
            "1,Dark Reader,https://example.test/1,5000,4.6,800,\"en, de\",2024-01-02\n"
            "4,Unrated,,30,,,,\n",
            encoding="utf-8",
        )
        (base / "categories.csv").write_text("id,name\n10,Productivity\n", encoding="utf-8")
        (base / "category_extensions.csv").write_text(
            "category_id,extension_id\n10,1\n10,2\n10,2\n", encoding="utf-8"
        )
        self.directory = str(base)

    def tearDown(self):
        self._tmp.cleanup()

    def test_load(self):
        snapshot = load_snapshot_from_csv(self.directory)
        self.assertEqual([e.id for e in snapshot.extensions], [1, 2, 4])
        self.assertEqual(snapshot.extensions[0].languages, "en, de")
        self.assertIsNone(snapshot.extensions[1].url)
        self.assertIsNone(snapshot.extensions[2].rating)
        self.assertEqual(snapshot.extensions[2].rating_votes, 0)
        self.assertEqual(len(snapshot.links), 2)

    def test_missing_file(self):
        (Path(self.directory) / "categories.csv").unlink()
        with self.assertRaises(FileNotFoundError):
            load_snapshot_from_csv(self.directory)

    def test_missing_columns(self):
        (Path(self.directory) / "categories.csv").write_text("id\n10\n", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_snapshot_from_csv(self.directory)


class TestCli(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self._tmp.name) / "catalog.db")
        insert_snapshot(self.db_path, EXTENSIONS, CATEGORIES, LINKS)

    def tearDown(self):
        self._tmp.cleanup()

    def _run(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = opportunity_cli.main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_opportunities(self):
        code, out, _ = self._run("opportunities", "--db-path", self.db_path, "--limit", "10")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["table_applied"]["limit"], 10)
        self.assertEqual(payload["filters_applied"]["minUsers"], 0)
        self.assertEqual(len(payload["bubble_points"]), payload["table"]["total"])
        self.assertIn("generated_at", payload)

    def test_market(self):
        code, out, _ = self._run("market", "--db-path", self.db_path)
        self.assertEqual(code, 0)
        ids = [c["category_id"] for c in json.loads(out)["categories"]]
        self.assertEqual(ids, [10, 20])

    def test_category_not_found(self):
        code, out, err = self._run("category", "99", "--db-path", self.db_path)
        self.assertEqual(code, 2)
        self.assertEqual(out, "")
        self.assertEqual(json.loads(err.strip().splitlines()[-1])["error"], "Category not found")

    def test_invalid_category_id(self):
        code, _, err = self._run("category", "abc", "--db-path", self.db_path)
        self.assertEqual(code, 2)
        self.assertIn("Invalid category id", err)

    def test_category(self):
        code, out, _ = self._run("category", "10", "--db-path", self.db_path, "--sort-by", "rating")
        self.assertEqual(code, 0)
        payload = json.loads(out)
        self.assertEqual(payload["category"]["extension_count"], 2)
        self.assertEqual(payload["table_applied"]["sortBy"], "rating")

    def test_missing_database_fails(self):
        code, out, err = self._run("market", "--db-path", str(Path(self._tmp.name) / "nope.db"))
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("not found", err)

    def test_missing_database_stderr_is_json_lines(self):
        """Run as a process so the CLI installs its own log handler."""
        result = subprocess.run(
            [sys.executable, str(CLI_SCRIPT), "market", "--db-path", str(Path(self._tmp.name) / "nope.db")],
            capture_output=True,
            text=True,
            timeout=120,
        )
        self.assertEqual(result.returncode, 1)
        self.assertEqual(result.stdout, "")

        lines = result.stderr.strip().splitlines()
        self.assertEqual(len(lines), 2)
        records = [json.loads(line) for line in lines]
        self.assertEqual(records[0]["level"], "ERROR")
        self.assertNotIn("exc", records[0])
        self.assertIn("not found", records[0]["msg"])
        self.assertFalse(records[1]["ok"])


class TestJsonLineFormatter(unittest.TestCase):
    def _record(self, msg, exc_info=None):
        return logging.LogRecord("catalog", logging.ERROR, __file__, 1, msg, (), exc_info)

    def test_quotes_are_escaped(self):
        formatter = opportunity_cli.JsonLineFormatter()
        line = formatter.format(self._record('near "FROM": syntax error'))
        self.assertEqual(json.loads(line)["msg"], 'near "FROM": syntax error')

    def test_traceback_stays_on_one_line(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = self._record("failed", sys.exc_info())

        line = opportunity_cli.JsonLineFormatter().format(record)
        self.assertNotIn("\n", line)
        self.assertIn("RuntimeError: boom", json.loads(line)["exc"])


if __name__ == "__main__":
    unittest.main()
