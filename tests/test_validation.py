import unittest
from dataclasses import replace
from datetime import datetime, timedelta

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.dedupe import find_duplicates, is_duplicate, same_type
from feedlog.models import SessionRecord, SessionType, Source, Unit
from feedlog.store import SqliteSessionStore
from feedlog.validator import (
    AMOUNT_TOO_LARGE,
    DURATION_TOO_LARGE,
    FUTURE_DATE,
    INVALID_AMOUNT,
    INVALID_SIDE_AMOUNT,
    normalize_source,
    validate_candidate,
)

NOW = datetime(2026, 3, 1, 12, 0)


def make_record(timestamp=datetime(2026, 2, 6, 10, 30), amount_ml=120.0, **kwargs):
    return SessionRecord(
        timestamp=timestamp,
        amount_ml=amount_ml,
        amount_entered=amount_ml,
        unit_entered=Unit.ML,
        **kwargs,
    )


class ImportConfigTests(unittest.TestCase):
    def test_defaults(self):
        self.assertEqual(DEFAULT_CONFIG.max_amount_ml, 500)
        self.assertEqual(DEFAULT_CONFIG.dedupe_window, timedelta(minutes=10))
        self.assertEqual(DEFAULT_CONFIG.dedupe_amount_tolerance_ml, 5)
        self.assertEqual(DEFAULT_CONFIG.max_workbook_rows, 50_000)

    def test_from_env_overrides(self):
        config = ImportConfig.from_env(
            {
                "FEEDLOG_MAX_AMOUNT_ML": "250",
                "FEEDLOG_DEDUPE_MINUTES": "3",
                "FEEDLOG_MAX_WORKBOOK_ROWS": "10",
                "FEEDLOG_MAX_FILE_MB": "1",
            }
        )
        self.assertEqual(config.max_amount_ml, 250)
        self.assertEqual(config.dedupe_window, timedelta(minutes=3))
        self.assertEqual(config.max_workbook_rows, 10)
        self.assertEqual(config.max_file_bytes, 1024 * 1024)

    def test_from_env_ignores_blank_values(self):
        self.assertEqual(ImportConfig.from_env({"FEEDLOG_MAX_AMOUNT_ML": " "}), ImportConfig())

    def test_from_env_rejects_bad_values(self):
        with self.assertRaisesRegex(ValueError, "FEEDLOG_DEDUPE_ML must be a number"):
            ImportConfig.from_env({"FEEDLOG_DEDUPE_ML": "five"})
        with self.assertRaisesRegex(ValueError, "must be positive"):
            ImportConfig.from_env({"FEEDLOG_MAX_AMOUNT_ML": "0"})


class ValidatorTests(unittest.TestCase):
    def test_valid_record_passes(self):
        self.assertIsNone(validate_candidate(make_record(), now=NOW))

    def test_amount_bounds(self):
        self.assertEqual(validate_candidate(make_record(amount_ml=0.0), now=NOW), INVALID_AMOUNT)
        self.assertEqual(validate_candidate(make_record(amount_ml=float("nan")), now=NOW), INVALID_AMOUNT)
        self.assertEqual(validate_candidate(make_record(amount_ml=float("inf")), now=NOW), INVALID_AMOUNT)
        self.assertEqual(validate_candidate(make_record(amount_ml=501.0), now=NOW), AMOUNT_TOO_LARGE)
        self.assertIsNone(validate_candidate(make_record(amount_ml=500.0), now=NOW))

    def test_side_amounts_must_be_positive_and_finite(self):
        self.assertEqual(validate_candidate(make_record(amount_left_ml=float("inf")), now=NOW), INVALID_SIDE_AMOUNT)
        self.assertEqual(validate_candidate(make_record(amount_right_ml=0.0), now=NOW), INVALID_SIDE_AMOUNT)
        self.assertIsNone(validate_candidate(make_record(amount_left_ml=60.0, amount_right_ml=60.0), now=NOW))

    def test_amount_cap_can_be_lifted_for_aggregates(self):
        record = make_record(amount_ml=2000.0)
        self.assertIsNone(validate_candidate(record, now=NOW, enforce_amount_cap=False))

    def test_amount_cap_follows_config(self):
        config = replace(DEFAULT_CONFIG, max_amount_ml=100)
        self.assertEqual(validate_candidate(make_record(), now=NOW, config=config), AMOUNT_TOO_LARGE)

    def test_duration_bound(self):
        self.assertEqual(validate_candidate(make_record(duration_min=121.0), now=NOW), DURATION_TOO_LARGE)
        self.assertIsNone(validate_candidate(make_record(duration_min=120.0), now=NOW))

    def test_future_dates(self):
        today = make_record(timestamp=NOW.replace(hour=23, minute=59))
        self.assertIsNone(validate_candidate(today, now=NOW))
        almost_tomorrow = make_record(timestamp=NOW + timedelta(days=1))
        self.assertIsNone(validate_candidate(almost_tomorrow, now=NOW))
        too_far = make_record(timestamp=NOW + timedelta(days=1, minutes=1))
        self.assertEqual(validate_candidate(too_far, now=NOW), FUTURE_DATE)

    def test_messages_do_not_echo_values(self):
        reason = validate_candidate(make_record(amount_ml=9999.0), now=NOW)
        self.assertNotIn("9999", reason)

    def test_normalize_source(self):
        self.assertEqual(normalize_source("Manual"), Source.MANUAL)
        self.assertEqual(normalize_source("ai_vision"), Source.AI_VISION)
        self.assertEqual(normalize_source("hacker"), Source.IMPORTED)
        self.assertEqual(normalize_source(""), Source.IMPORTED)
        self.assertEqual(normalize_source(None), Source.IMPORTED)


class DuplicateTests(unittest.TestCase):
    def test_tolerances_are_inclusive(self):
        base = make_record()
        edge = make_record(timestamp=base.timestamp + timedelta(minutes=10), amount_ml=125.0)
        self.assertTrue(is_duplicate(base, edge))
        self.assertTrue(is_duplicate(edge, base))
        self.assertTrue(is_duplicate(base, base))

    def test_either_bound_exceeded_is_not_duplicate(self):
        base = make_record()
        late = make_record(timestamp=base.timestamp + timedelta(minutes=11), amount_ml=120.0)
        bigger = make_record(timestamp=base.timestamp, amount_ml=126.0)
        self.assertFalse(is_duplicate(base, late))
        self.assertFalse(is_duplicate(base, bigger))

    def test_find_duplicates_queries_store_window(self):
        with SqliteSessionStore() as store:
            store.add(make_record(session_type=SessionType.FEEDING))
            store.add(make_record(timestamp=datetime(2026, 2, 6, 10, 46), session_type=SessionType.FEEDING))
            store.add(make_record(amount_ml=200.0, session_type=SessionType.FEEDING))

            matches = find_duplicates(store, make_record(timestamp=datetime(2026, 2, 6, 10, 35), amount_ml=118.0))
            self.assertEqual([m.timestamp for m in matches], [datetime(2026, 2, 6, 10, 30)])

    def test_same_type(self):
        untyped = make_record()
        feeding = make_record(session_type=SessionType.FEEDING)
        self.assertTrue(same_type(untyped, SessionType.PUMPING))
        self.assertTrue(same_type(feeding, None))
        self.assertFalse(same_type(feeding, SessionType.PUMPING))


if __name__ == "__main__":
    unittest.main()
