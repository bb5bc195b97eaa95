"""Duplicate detection against stored history and within a batch.

Exact matching compares ``(date, amount, description)`` verbatim, so it never
flags rows that differ only in case or whitespace. Fuzzy matching is opt-in
and scores each stored transaction inside the date tolerance window with
:func:`txn_ingest.similarity.score_pair`.

The detector depends only on a :class:`~txn_ingest.storage.TransactionLookup`;
lookup failures propagate to the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta

from .logging_setup import get_logger
from .models import (
    DetectionOptions,
    DuplicateMatch,
    MatchType,
    StoredDuplicatePair,
    TransactionCandidate,
)
from .pmap import p_map
from .similarity import score_pair
from .storage import TransactionLookup

logger = get_logger("txn_ingest.duplicates")

EXACT_FIELDS = frozenset({"date", "amount", "description"})

# Defaults for scanning stored history for likely duplicates.
SCAN_OPTIONS = DetectionOptions(
    fuzzy_matching=True,
    fuzzy_threshold=0.7,
    date_tolerance_days=1,
    amount_tolerance_percent=5.0,
    description_similarity_threshold=0.8,
)


def _by_confidence(matches: list[DuplicateMatch]) -> list[DuplicateMatch]:
    return sorted(
        matches,
        key=lambda m: (-m.confidence, m.existing_id if m.existing_id is not None else -1),
    )


class DuplicateDetector:
    def __init__(self, lookup: TransactionLookup) -> None:
        self._lookup = lookup

    def detect(
        self, candidate: TransactionCandidate, options: DetectionOptions | None = None
    ) -> list[DuplicateMatch]:
        """Return stored transactions that ``candidate`` duplicates, best first.

        An exact hit short-circuits the fuzzy scan.
        """

        opts = options or DetectionOptions()
        if opts.exact_match:
            existing_id = self._lookup.exists(*candidate.key)
            if existing_id is not None:
                return [
                    DuplicateMatch(
                        candidate=candidate,
                        existing_id=existing_id,
                        confidence=1.0,
                        match_type=MatchType.EXACT,
                        matched_fields=EXACT_FIELDS,
                    )
                ]
        if not opts.fuzzy_matching:
            return []
        return self._fuzzy(candidate, opts)

    def _fuzzy(
        self, candidate: TransactionCandidate, opts: DetectionOptions
    ) -> list[DuplicateMatch]:
        window = timedelta(days=opts.date_tolerance_days)
        stored = self._lookup.in_date_range(
            candidate.date - window, candidate.date + window, limit=opts.candidate_limit
        )
        matches: list[DuplicateMatch] = []
        for txn in stored:
            score = score_pair(candidate, txn.as_candidate(), opts)
            if score.confidence >= opts.fuzzy_threshold:
                matches.append(
                    DuplicateMatch(
                        candidate=candidate,
                        existing_id=txn.id,
                        confidence=score.confidence,
                        match_type=MatchType.FUZZY,
                        matched_fields=score.matched_fields,
                    )
                )
        return _by_confidence(matches)

    def detect_bulk(
        self,
        candidates: Sequence[TransactionCandidate],
        options: DetectionOptions | None = None,
    ) -> dict[int, list[DuplicateMatch]]:
        """Classify a batch, keyed by position in ``candidates``.

        Besides stored matches, every repeat of an earlier row's exact key gets
        a within-batch match (``existing_id is None``) pointing at the first
        occurrence. Positions without any match are absent from the result.
        """

        opts = options or DetectionOptions()

        first_seen: dict[tuple, int] = {}
        internal: dict[int, DuplicateMatch] = {}
        for pos, candidate in enumerate(candidates):
            first = first_seen.setdefault(candidate.key, pos)
            if first != pos:
                internal[pos] = DuplicateMatch(
                    candidate=candidate,
                    existing_id=None,
                    confidence=1.0,
                    match_type=MatchType.EXACT,
                    matched_fields=EXACT_FIELDS,
                    batch_position=first,
                )

        stored = p_map(
            candidates, lambda c: self.detect(c, opts), concurrency=opts.concurrency
        )

        result: dict[int, list[DuplicateMatch]] = {}
        for pos, matches in enumerate(stored):
            if pos in internal:
                matches = [*matches, internal[pos]]
            if matches:
                result[pos] = matches

        logger.debug(
            "bulk detection: %d candidates, %d with matches (%d within batch)",
            len(candidates),
            len(result),
            len(internal),
        )
        return result

    def scan_stored_duplicates(
        self, limit: int = 100, options: DetectionOptions | None = None
    ) -> list[StoredDuplicatePair]:
        """Pairwise fuzzy scan of the ``2 * limit`` most recent stored rows."""

        opts = options or SCAN_OPTIONS
        recent = self._lookup.recent(limit * 2)
        pairs: list[StoredDuplicatePair] = []
        for i, first in enumerate(recent):
            if len(pairs) >= limit:
                break
            for second in recent[i + 1 :]:
                if first.id == second.id:
                    continue
                score = score_pair(first.as_candidate(), second.as_candidate(), opts)
                if score.confidence >= opts.fuzzy_threshold:
                    pairs.append(
                        StoredDuplicatePair(
                            first=first,
                            second=second,
                            confidence=score.confidence,
                            matched_fields=score.matched_fields,
                        )
                    )
                    if len(pairs) >= limit:
                        break
        return sorted(pairs, key=lambda p: -p.confidence)


__all__ = ["EXACT_FIELDS", "SCAN_OPTIONS", "DuplicateDetector"]
