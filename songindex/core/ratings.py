"""Rating writes — the only mutation the service forwards to the row store.

A write body has the store's row-update shape:

    {"row": {"cells": [{"column": "<column id>", "value": 4}]}}

Every cell must target a column on the catalog's rating allow-list and carry
an integer within the rating range. Validation finishes before any upstream
call is made.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from songindex.core.catalog import Catalog
from songindex.core.errors import ValidationRejected
from songindex.core.models import RowUpdateRequest
from songindex.core.row_store import RowStoreClient

logger = logging.getLogger(__name__)


def _parse_rating(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("+-").isdigit():
            return int(text)
    return None


def validate_rating_update(payload: Any, catalog: Catalog) -> list[dict[str, Any]]:
    """Return the normalized cells to write, or raise ValidationRejected."""
    try:
        request = RowUpdateRequest.model_validate(payload)
    except ValidationError as e:
        raise ValidationRejected(
            f"Malformed update body: {e.error_count()} error(s)"
        ) from e

    cells = request.row.cells
    if not cells:
        raise ValidationRejected("Update body contains no cells")

    allowed = set(catalog.recordings.rating_columns)
    for cell in cells:
        if cell.column not in allowed:
            logger.warning(f"Rejected write to non-rating column {cell.column}")
            raise ValidationRejected(
                "Only rating updates are allowed",
                status_code=403,
                attempted_column=cell.column,
            )

    rating_range = catalog.recordings.rating_range
    validated: list[dict[str, Any]] = []
    for cell in cells:
        rating = _parse_rating(cell.value)
        if rating is None or not rating_range.min <= rating <= rating_range.max:
            raise ValidationRejected(
                f"Invalid rating value. Must be {rating_range.min}-{rating_range.max}.",
                value=cell.value,
            )
        validated.append({"column": cell.column, "value": rating})
    return validated


async def apply_rating_update(
    row_store: RowStoreClient,
    catalog: Catalog,
    row_id: str,
    payload: Any,
) -> dict[str, Any]:
    """Validate, then forward the rating write for one recording row."""
    cells = validate_rating_update(payload, catalog)
    result = await row_store.update_row(catalog.recordings.table, row_id, cells)
    logger.info(f"Updated rating on recording {row_id}")
    return result
