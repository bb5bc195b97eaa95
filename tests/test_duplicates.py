from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from tests.helpers.memory_store import InMemoryTransactionStore
from txn_ingest.duplicates import EXACT_FIELDS, DuplicateDetector
from txn_ingest.models import DetectionOptions, MatchType, TransactionCandidate


def _c(day: int, amount: str, description: str, category: str | None = None):
    return TransactionCandidate(date(2025, 1, day), Decimal(amount), description, category)


@pytest.fixture
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def detector(store: InMemoryTransactionStore) -> DuplicateDetector:
    return DuplicateDetector(store)


FUZZY = DetectionOptions(fuzzy_matching=True, date_tolerance_days=2, fuzzy_threshold=0.8)


def test_exact_match_against_stored(store, detector):
    stored = store.create(_c(10, "-50.00", "Coffee Shop"))

    matches = detector.detect(_c(10, "-50.00", "Coffee Shop"))

    assert len(matches) == 1
    m = matches[0]
    assert m.existing_id == stored.id
    assert m.match_type is MatchType.EXACT
    assert m.confidence == 1.0
    assert m.matched_fields == EXACT_FIELDS
    assert not m.within_batch


def test_no_match_for_new_transaction(store, detector):
    store.create(_c(10, "-50.00", "Coffee Shop"))
    assert detector.detect(_c(10, "-51.00", "Coffee Shop")) == []


def test_exact_matching_is_verbatim(store, detector):
    store.create(_c(10, "-50.00", "Coffee Shop"))
    assert detector.detect(_c(10, "-50.00", "COFFEE SHOP")) == []
    assert detector.detect(_c(10, "-50.00", "Coffee Shop ")) == []


def test_fuzzy_matching_catches_case_differences(store, detector):
    stored = store.create(_c(10, "-50.00", "Coffee Shop"))

    matches = detector.detect(_c(10, "-50.00", "COFFEE SHOP"), FUZZY)

    assert [(m.existing_id, m.match_type) for m in matches] == [(stored.id, MatchType.FUZZY)]
    assert matches[0].confidence == pytest.approx(1.0)


def test_fuzzy_matches_are_sorted_best_first(store, detector):
    same_day = store.create(_c(10, "-50.00", "Coffee Shop"))
    next_day = store.create(_c(11, "-50.00", "Coffee Shop"))
    store.create(_c(20, "-50.00", "Coffee Shop"))

    matches = detector.detect(_c(10, "-50.00", "coffee shop"), FUZZY)

    assert [m.existing_id for m in matches] == [same_day.id, next_day.id]
    assert matches[0].confidence == pytest.approx(1.0)
    assert matches[1].confidence == pytest.approx(0.925)


def test_fuzzy_lookup_uses_the_tolerance_window(store, detector):
    detector.detect(_c(10, "-50.00", "Coffee Shop"), FUZZY)
    assert store.in_date_range_calls == [(date(2025, 1, 8), date(2025, 1, 12), 1000)]


def test_exact_hit_skips_the_fuzzy_scan(store, detector):
    store.create(_c(10, "-50.00", "Coffee Shop"))
    matches = detector.detect(_c(10, "-50.00", "Coffee Shop"), FUZZY)
    assert [m.match_type for m in matches] == [MatchType.EXACT]
    assert store.in_date_range_calls == []


def test_fuzzy_threshold_filters_weak_matches(store, detector):
    store.create(_c(10, "-50.00", "Coffee Shop"))
    strict = FUZZY.model_copy(update={"fuzzy_threshold": 0.95})
    assert detector.detect(_c(11, "-50.00", "Coffee Shop"), strict) == []


def test_detect_bulk_flags_repeats_within_the_batch(detector):
    a = _c(10, "-50.00", "Coffee Shop")
    b = _c(11, "-12.00", "Bakery")

    result = detector.detect_bulk([a, a, b])

    assert list(result) == [1]
    (match,) = result[1]
    assert match.within_batch
    assert match.existing_id is None
    assert match.batch_position == 0
    assert match.match_type is MatchType.EXACT


def test_detect_bulk_reports_stored_and_batch_matches_together(store, detector):
    a = _c(10, "-50.00", "Coffee Shop")
    stored = store.create(a)

    result = detector.detect_bulk([a, a])

    assert [m.existing_id for m in result[0]] == [stored.id]
    assert [(m.existing_id, m.batch_position) for m in result[1]] == [
        (stored.id, None),
        (None, 0),
    ]


def test_detect_bulk_is_the_same_at_any_concurrency(store, detector):
    for day in range(1, 21):
        store.create(_c(day, f"-{day}.00", f"Shop {day}"))
    batch = [_c(day, f"-{day}.00", f"Shop {day}") for day in range(1, 31, 2)]
    batch += [_c(3, "-3.00", "shop 3"), batch[0]]

    serial = detector.detect_bulk(batch, FUZZY)
    parallel = detector.detect_bulk(batch, FUZZY.model_copy(update={"concurrency": 4}))

    assert parallel == serial
    assert len(serial) > 0


def test_scan_stored_duplicates_finds_likely_pairs(store, detector):
    first = store.create(_c(5, "-15.99", "Netflix"))
    second = store.create(_c(5, "-15.99", "NETFLIX"))
    store.create(_c(1, "-1200.00", "Rent"))

    pairs = detector.scan_stored_duplicates()

    assert len(pairs) == 1
    assert {pairs[0].first.id, pairs[0].second.id} == {first.id, second.id}
    assert pairs[0].confidence == pytest.approx(1.0)


def test_scan_stored_duplicates_respects_limit(store, detector):
    for n in range(4):
        store.create(_c(5, f"-{n + 1}.00", "Subscription"))
        store.create(_c(5, f"-{n + 1}.00", "SUBSCRIPTION"))

    assert len(detector.scan_stored_duplicates(limit=2)) == 2


class _BrokenLookup:
    def exists(self, txn_date, amount, description):
        raise ConnectionError("lookup failed")

    def in_date_range(self, start, end, *, limit):
        raise ConnectionError("lookup failed")

    def recent(self, limit):
        raise ConnectionError("lookup failed")


def test_lookup_errors_propagate():
    detector = DuplicateDetector(_BrokenLookup())
    with pytest.raises(ConnectionError):
        detector.detect(_c(10, "-50.00", "Coffee Shop"))
    with pytest.raises(ConnectionError):
        detector.detect_bulk(
            [_c(10, "-50.00", "A"), _c(11, "-5.00", "B")],
            DetectionOptions(concurrency=2),
        )
