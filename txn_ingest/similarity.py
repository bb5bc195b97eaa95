"""Weighted multi-field similarity for fuzzy duplicate matching.

Each field is scored by a named :class:`FieldScorer` that declares its weight.
A scorer returns ``None`` when the field is not evaluated for a pair (the
category bonus only applies when both sides carry a category), otherwise a
``(similarity, contributes)`` pair. Confidence is the weighted sum of the
contributing similarities divided by the total weight evaluated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from rapidfuzz.distance import Levenshtein

from .models import DetectionOptions, TransactionCandidate

CATEGORY_SIMILARITY_FLOOR = 0.8


def string_similarity(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len)`` over trimmed, lower-cased text."""

    s1 = a.strip().lower()
    s2 = b.strip().lower()
    if s1 == s2:
        return 1.0
    longest = max(len(s1), len(s2))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(s1, s2) / longest


def _decay(diff: float, tolerance: float) -> float:
    # 1.0 at zero difference, 0.5 at the tolerance edge, 0 beyond it.
    if diff == 0:
        return 1.0
    if tolerance > 0 and diff <= tolerance:
        return 1.0 - (diff / tolerance) * 0.5
    return 0.0


type FieldScore = tuple[float, bool]


class FieldScorer(Protocol):
    name: str
    weight: float

    def score(
        self, a: TransactionCandidate, b: TransactionCandidate, options: DetectionOptions
    ) -> FieldScore | None: ...


@dataclass(frozen=True, slots=True)
class DateScorer:
    name: str = "date"
    weight: float = 0.3

    def score(
        self, a: TransactionCandidate, b: TransactionCandidate, options: DetectionOptions
    ) -> FieldScore | None:
        s = _decay(abs((a.date - b.date).days), options.date_tolerance_days)
        return s, s > 0


@dataclass(frozen=True, slots=True)
class AmountScorer:
    name: str = "amount"
    weight: float = 0.4

    def score(
        self, a: TransactionCandidate, b: TransactionCandidate, options: DetectionOptions
    ) -> FieldScore | None:
        if a.amount == b.amount:
            return 1.0, True
        avg = (abs(a.amount) + abs(b.amount)) / 2
        pct = float(abs(a.amount - b.amount) / avg * 100) if avg > 0 else 100.0
        s = _decay(pct, options.amount_tolerance_percent)
        return s, s > 0


@dataclass(frozen=True, slots=True)
class DescriptionScorer:
    name: str = "description"
    weight: float = 0.3

    def score(
        self, a: TransactionCandidate, b: TransactionCandidate, options: DetectionOptions
    ) -> FieldScore | None:
        s = string_similarity(a.description, b.description)
        return s, s >= options.description_similarity_threshold


@dataclass(frozen=True, slots=True)
class CategoryScorer:
    name: str = "category"
    weight: float = 0.1

    def score(
        self, a: TransactionCandidate, b: TransactionCandidate, options: DetectionOptions
    ) -> FieldScore | None:
        if not a.category or not b.category:
            return None
        s = string_similarity(a.category, b.category)
        return s, s > CATEGORY_SIMILARITY_FLOOR


DEFAULT_SCORERS: tuple[FieldScorer, ...] = (
    DateScorer(),
    AmountScorer(),
    DescriptionScorer(),
    CategoryScorer(),
)


@dataclass(frozen=True, slots=True)
class PairScore:
    confidence: float
    matched_fields: frozenset[str]


def score_pair(
    a: TransactionCandidate,
    b: TransactionCandidate,
    options: DetectionOptions,
    scorers: Sequence[FieldScorer] = DEFAULT_SCORERS,
) -> PairScore:
    total = 0.0
    evaluated = 0.0
    matched: set[str] = set()
    for scorer in scorers:
        result = scorer.score(a, b, options)
        if result is None:
            continue
        evaluated += scorer.weight
        similarity, contributes = result
        if contributes:
            total += similarity * scorer.weight
            matched.add(scorer.name)
    confidence = total / evaluated if evaluated > 0 else 0.0
    return PairScore(confidence=confidence, matched_fields=frozenset(matched))


__all__ = [
    "string_similarity",
    "FieldScorer",
    "DateScorer",
    "AmountScorer",
    "DescriptionScorer",
    "CategoryScorer",
    "DEFAULT_SCORERS",
    "PairScore",
    "score_pair",
]
