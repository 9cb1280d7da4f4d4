"""Cell values — tagged union over the row store's rich value format.

The store returns a cell as a plain scalar (possibly wrapped in ``` code
formatting markers), a row reference object, an attachment/image object, or a
list of those. parse_cell() maps the raw JSON onto one explicit variant; the
extract_* helpers each handle one concern over every variant.

Every function here is total: malformed input degrades to "" or None and
never raises, so one bad row cannot abort an index build.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

FORMAT_MARKER = "```"
LIST_SEPARATOR = ", "


@dataclass(frozen=True)
class Scalar:
    value: Union[str, int, float]


@dataclass(frozen=True)
class Reference:
    row_id: Optional[str]
    table_id: Optional[str]
    name: str = ""


@dataclass(frozen=True)
class ReferenceList:
    items: tuple[Reference, ...]


@dataclass(frozen=True)
class Attachment:
    url: Optional[str]
    name: str = ""


@dataclass(frozen=True)
class AttachmentList:
    items: tuple[Attachment, ...]


Cell = Union[Scalar, Reference, ReferenceList, Attachment, AttachmentList]


def strip_markers(text: Any) -> str:
    """Remove inert formatting markers and surrounding whitespace."""
    if text is None:
        return ""
    return str(text).replace(FORMAT_MARKER, "").strip()


def _scalar_text(value: Union[str, int, float]) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return strip_markers(value)


def _object_text(raw: dict) -> str:
    for key in ("name", "display", "value", "amount"):
        val = raw.get(key)
        if val not in (None, ""):
            return strip_markers(val)
    return ""


def _identifier(value: Any) -> Optional[str]:
    """Ids and URLs arrive as strings; numeric ids are stringified, anything else dropped."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        return str(value).strip() or None
    return None


def parse_cell(raw: Any) -> Optional[Cell]:
    """Map a raw rich-format value onto the Cell union. Never raises."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return Scalar("true" if raw else "false")
    if isinstance(raw, (str, int, float)):
        return Scalar(raw)
    if isinstance(raw, dict):
        if raw.get("rowId") or raw.get("tableId"):
            return Reference(
                row_id=_identifier(raw.get("rowId")),
                table_id=_identifier(raw.get("tableId")),
                name=str(raw.get("name") or ""),
            )
        if raw.get("url"):
            return Attachment(url=_identifier(raw["url"]), name=str(raw.get("name") or ""))
        return Scalar(_object_text(raw))
    if isinstance(raw, (list, tuple)):
        members = [c for c in (parse_cell(item) for item in raw) if c is not None]
        if not members:
            return None
        if all(isinstance(m, Reference) for m in members):
            return ReferenceList(tuple(members))
        if all(isinstance(m, Attachment) for m in members):
            return AttachmentList(tuple(members))
        # Mixed lists keep only their display text
        return Scalar(LIST_SEPARATOR.join(t for t in map(extract_text, members) if t))
    return None


def extract_text(cell: Optional[Cell]) -> str:
    """Display string for any cell; lists are joined with LIST_SEPARATOR."""
    if cell is None:
        return ""
    if isinstance(cell, Scalar):
        return _scalar_text(cell.value)
    if isinstance(cell, Reference):
        return strip_markers(cell.name)
    if isinstance(cell, Attachment):
        return strip_markers(cell.name)
    if isinstance(cell, (ReferenceList, AttachmentList)):
        texts = [extract_text(item) for item in cell.items]
        return LIST_SEPARATOR.join(t for t in texts if t)
    return ""


def extract_row_id(cell: Optional[Cell]) -> Optional[str]:
    """Row id of the (first) referenced row, or None for non-references."""
    if isinstance(cell, Reference):
        return cell.row_id
    if isinstance(cell, ReferenceList) and cell.items:
        return cell.items[0].row_id
    return None


def normalize_custom_id(text: Any) -> Optional[str]:
    """'```#152```' -> '152', '#4054' -> '4054', '' -> None."""
    cleaned = strip_markers(text)
    if cleaned.startswith("#"):
        cleaned = cleaned[1:].strip()
    return cleaned or None


def extract_custom_id(cell: Optional[Cell]) -> Optional[str]:
    """Human-assigned identifier from a reference's display name or a scalar."""
    if isinstance(cell, Reference):
        return normalize_custom_id(cell.name)
    if isinstance(cell, ReferenceList):
        return normalize_custom_id(cell.items[0].name) if cell.items else None
    if isinstance(cell, Scalar):
        return normalize_custom_id(_scalar_text(cell.value))
    return None


def extract_attachments(cell: Optional[Cell]) -> list[Attachment]:
    """All attachments with a usable URL, in source order."""
    if isinstance(cell, Attachment):
        items: tuple[Attachment, ...] = (cell,)
    elif isinstance(cell, AttachmentList):
        items = cell.items
    else:
        return []
    return [a for a in items if a.url]


def extract_attachment_url(cell: Optional[Cell]) -> Optional[str]:
    """URL of the first attachment, or None when the first has no URL."""
    if isinstance(cell, Attachment):
        return cell.url or None
    if isinstance(cell, AttachmentList) and cell.items:
        return cell.items[0].url or None
    return None
