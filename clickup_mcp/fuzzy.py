"""
Weighted multi-field fuzzy index.

Each record is projected onto a fixed set of weighted fields (see
``types.TASK_FIELDS`` and friends). A single term is scored against every
field value:

- equality scores 0.0
- containment scores below ``SUBSTRING_SCORE_CEILING``, lower when the term
  covers more of the value
- otherwise the best ``SequenceMatcher`` ratio over windows of the value
  aligned on the matching blocks gives a distance ``1 - ratio``, admitted
  only within ``threshold``

The field weight then scales the distance so that a perfect match in the
heaviest field scores 0.0 and weaker fields can never beat it. An index is
immutable; refreshing means building a new one.
"""

import logging
from difflib import SequenceMatcher
from typing import Iterable, Optional, Sequence

from .types import FieldSpec, Record, ScoredMatch, field_values

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.4
DEFAULT_MIN_MATCH_LENGTH = 2

# Long free text (task descriptions) is only searched near its start
MAX_FIELD_LENGTH = 2000

SUBSTRING_SCORE_CEILING = 0.1


def term_distance(
    term: str,
    value: str,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    min_match_length: int = DEFAULT_MIN_MATCH_LENGTH,
) -> Optional[float]:
    """
    Normalized distance of ``term`` to the best-matching part of ``value``.

    Both arguments must already be lower-cased.

    Returns:
        0.0 for an exact match, higher for weaker matches, or None when
        the value doesn't match within ``threshold``
    """
    if len(term) < min_match_length or not value:
        return None
    if term == value:
        return 0.0
    if term in value:
        return SUBSTRING_SCORE_CEILING * (1 - len(term) / len(value))

    matcher = SequenceMatcher(None, value, term, autojunk=False)
    blocks = [b for b in matcher.get_matching_blocks() if b.size]
    if not blocks or max(b.size for b in blocks) < min_match_length:
        return None

    window_matcher = SequenceMatcher(None, autojunk=False)
    window_matcher.set_seq2(term)
    best_ratio = 0.0
    tried: set[int] = set()
    for block in blocks:
        start = max(0, block.a - block.b)
        if start in tried:
            continue
        tried.add(start)
        window_matcher.set_seq1(value[start:start + len(term)])
        best_ratio = max(best_ratio, window_matcher.ratio())

    distance = 1.0 - best_ratio
    if distance > threshold:
        return None
    return distance


class FuzzyIndex:
    """Immutable fuzzy index over a record set."""

    def __init__(
        self,
        records: Iterable[Record],
        fields: Sequence[FieldSpec],
        *,
        threshold: float = DEFAULT_THRESHOLD,
        min_match_length: int = DEFAULT_MIN_MATCH_LENGTH,
    ):
        if not fields:
            raise ValueError("FuzzyIndex needs at least one field")
        self._records: tuple[Record, ...] = tuple(records)
        self._fields = tuple(fields)
        self._threshold = threshold
        self._min_match_length = min_match_length
        max_weight = max(f.weight for f in self._fields)
        # Per record: ((relative_weight, (lowercased values...)), ...)
        self._projections = tuple(
            tuple(
                (
                    spec.weight / max_weight,
                    tuple(v.lower()[:MAX_FIELD_LENGTH] for v in field_values(record, spec.path)),
                )
                for spec in self._fields
            )
            for record in self._records
        )

    @classmethod
    def build(
        cls,
        records: Iterable[Record],
        fields: Sequence[FieldSpec],
        *,
        threshold: float = DEFAULT_THRESHOLD,
        min_match_length: int = DEFAULT_MIN_MATCH_LENGTH,
    ) -> "FuzzyIndex":
        index = cls(records, fields, threshold=threshold, min_match_length=min_match_length)
        logger.debug("Built fuzzy index over %d records", len(index))
        return index

    @property
    def records(self) -> tuple[Record, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def search(self, term: str) -> list[ScoredMatch]:
        """Score every record against a single term, best first."""
        needle = term.strip().lower()
        if len(needle) < self._min_match_length:
            return []

        matches: list[ScoredMatch] = []
        for record, projection in zip(self._records, self._projections):
            best: Optional[float] = None
            for relative_weight, values in projection:
                for value in values:
                    distance = term_distance(
                        needle, value,
                        threshold=self._threshold,
                        min_match_length=self._min_match_length,
                    )
                    if distance is None:
                        continue
                    weighted = 1.0 - (1.0 - distance) * relative_weight
                    if best is None or weighted < best:
                        best = weighted
            if best is not None:
                matches.append(ScoredMatch(record=record, score=best, terms=[needle]))

        matches.sort(key=lambda m: m.score)
        return matches
