"""
Article deduplication against the global corpus.

Each candidate entry goes through two checks:
1. Global content fingerprint lookup (same content from any feed or scrape)
2. Per-feed identity uniqueness, enforced by the repository on insert

Both outcomes are benign skips. Accepted entries are inserted once and never
updated afterwards.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from ..logging_utils import get_logger, log_event
from .errors import UniqueConstraintViolation
from .fingerprint import ContentFingerprinter
from .types import CandidateEntry, DedupStats

if TYPE_CHECKING:
    from ..storage.base import Repository


logger = get_logger("dedup")


class Deduplicator:
    """Store new entries for a feed, skipping content already in the corpus.

    Args:
        repository: Persistence boundary holding articles
        fingerprinter: Fingerprint strategy; ContentFingerprinter by default
    """

    def __init__(self, repository: Repository, fingerprinter: ContentFingerprinter | None = None):
        self.repository = repository
        self.fingerprinter = fingerprinter or ContentFingerprinter()

    def ingest(self, feed_id: int, entries: Iterable[CandidateEntry]) -> DedupStats:
        """Insert every entry whose content and identity are new.

        Args:
            feed_id: Feed the entries belong to
            entries: Candidate entries in source order

        Returns:
            DedupStats with counts of added and skipped entries
        """
        stats = DedupStats()
        for entry in entries:
            checksum = self.fingerprinter.fingerprint_entry(entry)

            if self.repository.find_article_by_fingerprint(checksum) is not None:
                stats.duplicate_content += 1
                log_event(
                    logger,
                    "Skipping duplicate article",
                    level=logging.DEBUG,
                    event="duplicate_content",
                    feed_id=feed_id,
                    title=entry.title,
                )
                continue

            try:
                self.repository.create_article(feed_id, entry, checksum)
            except UniqueConstraintViolation as exc:
                # A concurrent refresh won the insert; the row exists either way.
                if exc.constraint == "fingerprint":
                    stats.duplicate_content += 1
                else:
                    stats.duplicate_identity += 1
                log_event(
                    logger,
                    "Skipping duplicate guid",
                    level=logging.DEBUG,
                    event="duplicate_identity",
                    feed_id=feed_id,
                    guid=entry.guid,
                    constraint=exc.constraint,
                )
                continue

            stats.added += 1
        return stats
