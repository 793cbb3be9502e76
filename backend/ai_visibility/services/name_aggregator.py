"""Competitor name aggregator — merges per-strategy names into candidates.

Rules:
  - Identity is case-insensitive and whitespace-normalized
    ("Bolt", "bolt ", " BOLT" are one candidate)
  - First-seen casing is the display form
  - Every observation counts, including repeats within one strategy
  - Sorted by descending frequency; ties keep first-seen order
  - The target entity is never a candidate

Pure function: the fold runs over a fixed strategy order and returns
frozen ``Candidate`` objects, so re-running on the same input yields the
same sequence.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..schemas.competitor_schema import Candidate, StrategyId


def normalize_name(raw_name: str) -> str:
    """Identity key for a competitor name."""
    return " ".join(raw_name.split()).lower()


def display_name(raw_name: str) -> str:
    return " ".join(raw_name.split())


def _ordered_strategies(
    per_strategy: Mapping[StrategyId, Sequence[str]],
    order: Optional[Iterable[StrategyId]],
) -> List[StrategyId]:
    if order is None:
        return list(per_strategy.keys())
    ordered = [s for s in order if s in per_strategy]
    # Strategies missing from ``order`` still count, after the ordered ones
    ordered.extend(s for s in per_strategy if s not in ordered)
    return ordered


def aggregate(
    per_strategy: Mapping[StrategyId, Sequence[str]],
    target: str,
    order: Optional[Iterable[StrategyId]] = None,
) -> List[Candidate]:
    """Fold strategy outputs into a frequency-ranked candidate list."""
    target_key = normalize_name(target)

    # key -> (display, frequency, sources, first_seen)
    tally: Dict[str, Tuple[str, int, frozenset, int]] = {}
    seen = 0
    for strategy in _ordered_strategies(per_strategy, order):
        for raw in per_strategy.get(strategy) or ():
            if not isinstance(raw, str):
                continue
            key = normalize_name(raw)
            if not key or key == target_key:
                continue
            if key in tally:
                name, frequency, sources, first_seen = tally[key]
                tally[key] = (name, frequency + 1, sources | {strategy}, first_seen)
            else:
                tally[key] = (display_name(raw), 1, frozenset({strategy}), seen)
                seen += 1

    ranked = sorted(tally.values(), key=lambda entry: (-entry[1], entry[3]))
    return [
        Candidate(name=name, frequency=frequency, sources=sources)
        for name, frequency, sources, _ in ranked
    ]


def candidate_names(candidates: Iterable[Candidate]) -> List[str]:
    return [candidate.name for candidate in candidates]
