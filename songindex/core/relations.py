"""Relation resolution for reference cells.

A relation column may hold one reference, a list of references, or (for
legacy rows) a plain formatted scalar. Resolution always walks members in
source order and never re-sorts, so rebuilding an index over unchanged rows
picks the same "first" member every time.
"""

from dataclasses import dataclass
from typing import Optional

from songindex.core.cells import (
    Cell,
    Reference,
    ReferenceList,
    Scalar,
    extract_custom_id,
    extract_text,
)


@dataclass(frozen=True)
class ResolvedRelation:
    row_id: Optional[str] = None
    custom_id: Optional[str] = None
    display_text: str = ""


EMPTY_RELATION = ResolvedRelation()


def _resolve_one(cell: Cell) -> ResolvedRelation:
    if isinstance(cell, Reference):
        return ResolvedRelation(
            row_id=cell.row_id,
            custom_id=extract_custom_id(cell),
            display_text=extract_text(cell),
        )
    return ResolvedRelation(
        row_id=None,
        custom_id=extract_custom_id(cell),
        display_text=extract_text(cell),
    )


def resolve_all(cell: Optional[Cell]) -> list[ResolvedRelation]:
    """Every member of a relation cell, in source order."""
    if cell is None:
        return []
    if isinstance(cell, ReferenceList):
        return [_resolve_one(ref) for ref in cell.items]
    if isinstance(cell, (Reference, Scalar)):
        resolved = _resolve_one(cell)
        return [resolved] if resolved.display_text or resolved.row_id else []
    return []


def resolve_relation(cell: Optional[Cell]) -> ResolvedRelation:
    """The primary (first) member of a relation cell."""
    members = resolve_all(cell)
    return members[0] if members else EMPTY_RELATION


def resolve_key(cell: Optional[Cell]) -> Optional[str]:
    """Custom id of the primary member; used as a parent join key."""
    return resolve_relation(cell).custom_id
