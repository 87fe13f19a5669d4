"""
importer.py — Commit parsed candidates to a store, skipping duplicates

All inserts of one call happen inside a single store transaction. Duplicate
decisions look only at records that existed before the call started, so two
near-identical rows in the same file are both kept.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from feedlog.config import DEFAULT_CONFIG, ImportConfig
from feedlog.dedupe import find_duplicates, same_type
from feedlog.models import CommitResult, SessionRecord, SessionType
from feedlog.store import SessionStore

logger = logging.getLogger(__name__)


def commit_sessions(
    store: SessionStore,
    sessions: Iterable[SessionRecord],
    config: ImportConfig = DEFAULT_CONFIG,
) -> CommitResult:
    """
    Insert every candidate that has no type-matching duplicate in the store.

    Candidates without a session type are stored as feedings. Any exception
    raised by the store rolls back the whole batch.
    """
    result = CommitResult()
    inserted_ids: set[int] = set()

    with store.transaction():
        for candidate in sessions:
            matches = [
                record
                for record in find_duplicates(store, candidate, config)
                if record.id not in inserted_ids and same_type(record, candidate.session_type)
            ]
            if matches:
                result.skipped += 1
                if len(result.skipped_items) < config.max_skipped_items:
                    result.skipped_items.append(candidate.describe())
                logger.debug("Skipping duplicate %s (matches id %s)", candidate.describe(), matches[0].id)
                continue

            stored = store.add(
                replace(candidate, id=None, session_type=candidate.session_type or SessionType.FEEDING)
            )
            if stored.id is not None:
                inserted_ids.add(stored.id)
            result.imported += 1

    logger.info("Imported %d sessions, skipped %d duplicates", result.imported, result.skipped)
    return result
