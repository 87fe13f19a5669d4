import sqlite3
import tempfile
import unittest
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path

from feedlog.config import DEFAULT_CONFIG
from feedlog.importer import commit_sessions
from feedlog.models import SessionRecord, SessionType, Side, Source, Unit
from feedlog.store import SqliteSessionStore

NOW = datetime(2026, 3, 1, 12, 0)


def make_record(minute=30, amount_ml=120.0, session_type=SessionType.FEEDING, **kwargs):
    kwargs.setdefault("created_at", NOW)
    return SessionRecord(
        timestamp=datetime(2026, 2, 6, 10, minute),
        amount_ml=amount_ml,
        amount_entered=amount_ml,
        unit_entered=Unit.ML,
        session_type=session_type,
        **kwargs,
    )


class FailingStore(SqliteSessionStore):
    def __init__(self, fail_after: int) -> None:
        super().__init__()
        self.fail_after = fail_after
        self.adds = 0

    def add(self, record):
        self.adds += 1
        if self.adds > self.fail_after:
            raise sqlite3.OperationalError("disk I/O error")
        return super().add(record)


class SqliteSessionStoreTests(unittest.TestCase):
    def test_add_round_trips_every_field(self):
        record = make_record(
            side=Side.BOTH,
            amount_left_ml=60.0,
            amount_right_ml=60.0,
            duration_min=15.0,
            notes="'=x",
            source=Source.OCR,
            confidence=0.8,
            updated_at=NOW,
        )
        with SqliteSessionStore() as store:
            stored = store.add(record)
            self.assertIsNotNone(stored.id)
            self.assertEqual(store.all_sessions(), [stored])

    def test_find_between_is_inclusive(self):
        with SqliteSessionStore() as store:
            for minute in (20, 30, 40, 41):
                store.add(make_record(minute=minute))
            found = store.find_between(datetime(2026, 2, 6, 10, 20), datetime(2026, 2, 6, 10, 40))
            self.assertEqual([r.timestamp.minute for r in found], [20, 30, 40])

    def test_add_many_is_atomic(self):
        with FailingStore(fail_after=1) as store:
            with self.assertRaises(sqlite3.OperationalError):
                store.add_many([make_record(minute=1), make_record(minute=2)])
            self.assertEqual(store.count(), 0)

    def test_counts_and_delete_imported(self):
        with SqliteSessionStore() as store:
            store.add(make_record(minute=1, source=Source.MANUAL))
            store.add(make_record(minute=2, source=Source.IMPORTED, created_at=NOW - timedelta(days=3)))
            store.add(make_record(minute=3, source=Source.IMPORTED))
            store.add(make_record(minute=4, source=Source.AI_VISION))

            self.assertEqual(
                store.count_by_source(),
                {"manual": 1, "imported": 2, "ocr": 0, "ai_vision": 1},
            )
            self.assertEqual(store.delete_imported([Source.IMPORTED], after=NOW - timedelta(days=1)), 1)
            self.assertEqual(store.delete_imported(), 2)
            self.assertEqual([r.source for r in store.all_sessions()], [Source.MANUAL])
            self.assertEqual(store.delete_imported([]), 0)

    def test_file_database_persists(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "feedlog.db"
            with SqliteSessionStore(path) as store:
                store.add(make_record())
            with SqliteSessionStore(path) as store:
                self.assertEqual(store.count(), 1)


class CommitSessionsTests(unittest.TestCase):
    def test_skips_duplicates_of_existing_records(self):
        with SqliteSessionStore() as store:
            store.add(make_record(minute=30, amount_ml=120.0))
            result = commit_sessions(
                store,
                [
                    make_record(minute=35, amount_ml=123.0),
                    make_record(minute=30, amount_ml=126.0),
                    make_record(minute=41, amount_ml=120.0),
                ],
            )
            self.assertEqual((result.imported, result.skipped), (2, 1))
            self.assertEqual(result.skipped_items, ["2026-02-06T10:35:00 feeding 123ml"])
            self.assertEqual(store.count(), 3)

    def test_type_must_match(self):
        with SqliteSessionStore() as store:
            store.add(make_record(session_type=SessionType.PUMPING))
            result = commit_sessions(store, [make_record(session_type=SessionType.FEEDING)])
            self.assertEqual(result.imported, 1)

    def test_untyped_stored_record_matches_any_type(self):
        with SqliteSessionStore() as store:
            store.add(make_record(session_type=None))
            result = commit_sessions(store, [make_record(session_type=SessionType.PUMPING)])
            self.assertEqual(result.skipped, 1)

    def test_untyped_candidate_is_stored_as_feeding(self):
        with SqliteSessionStore() as store:
            commit_sessions(store, [make_record(session_type=None)])
            self.assertEqual(store.all_sessions()[0].session_type, SessionType.FEEDING)

    def test_rows_in_the_same_batch_do_not_dedupe_each_other(self):
        with SqliteSessionStore() as store:
            result = commit_sessions(store, [make_record(), make_record()])
            self.assertEqual((result.imported, result.skipped), (2, 0))

    def test_reimport_is_idempotent(self):
        batch = [make_record(minute=m) for m in (0, 20, 40)]
        with SqliteSessionStore() as store:
            commit_sessions(store, batch)
            again = commit_sessions(store, batch)
            self.assertEqual((again.imported, again.skipped), (0, 3))
            self.assertEqual(store.count(), 3)

    def test_failure_rolls_back_the_batch(self):
        with FailingStore(fail_after=1) as store:
            with self.assertRaises(sqlite3.OperationalError):
                commit_sessions(store, [make_record(minute=0), make_record(minute=30)])
            self.assertEqual(store.count(), 0)

    def test_skipped_items_are_capped(self):
        config = replace(DEFAULT_CONFIG, max_skipped_items=1)
        with SqliteSessionStore() as store:
            store.add(make_record(minute=0))
            store.add(make_record(minute=30))
            result = commit_sessions(store, [make_record(minute=0), make_record(minute=30)], config)
            self.assertEqual(result.skipped, 2)
            self.assertEqual(len(result.skipped_items), 1)


if __name__ == "__main__":
    unittest.main()
