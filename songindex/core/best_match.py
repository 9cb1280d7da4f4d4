"""Best-match selection — picks one canonical child record per parent key.

Resolution rules:

1. Eligibility: a child without a usable payload (file URL) is dropped.
2. Rank: highest rank wins.
3. Tie-break: source order; the first child seen wins.

Python's sort is stable, so sorting by rank descending alone preserves
source order among equal ranks.
"""

import re
from dataclasses import dataclass
from operator import attrgetter
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class ChildRecord:
    row_id: str
    rank: int = 0
    payload: Optional[str] = None

    @property
    def eligible(self) -> bool:
        return bool(self.payload)


@dataclass(frozen=True)
class BestMatchSummary:
    row_id: str
    rank: int
    count: int


def parse_rank(text: Optional[str], minimum: int = 1, maximum: int = 5) -> int:
    """Parse a leading integer rank within [minimum, maximum]; anything else is 0."""
    if not text:
        return 0
    match = _LEADING_INT.match(str(text))
    if not match:
        return 0
    value = int(match.group(1))
    if value < minimum or value > maximum:
        return 0
    return value


def rank_group(
    children: Iterable[T],
    rank: Callable[[T], int] = attrgetter("rank"),
) -> list[T]:
    """Order one group by rank descending, keeping source order on ties."""
    return sorted(children, key=rank, reverse=True)


def group_eligible(
    children: Iterable[tuple[str, ChildRecord]],
) -> dict[str, list[ChildRecord]]:
    """Group eligible children by parent key. Key order follows first appearance."""
    grouped: dict[str, list[ChildRecord]] = {}
    for parent_key, child in children:
        if not parent_key or not child.eligible:
            continue
        grouped.setdefault(parent_key, []).append(child)
    return grouped


def select_best(
    children: Iterable[tuple[str, ChildRecord]],
) -> dict[str, BestMatchSummary]:
    """Resolve every parent key to its best eligible child.

    Parent keys whose children are all ineligible are absent from the result.
    """
    best: dict[str, BestMatchSummary] = {}
    for parent_key, group in group_eligible(children).items():
        top = rank_group(group)[0]
        best[parent_key] = BestMatchSummary(
            row_id=top.row_id,
            rank=top.rank,
            count=len(group),
        )
    return best
