from __future__ import annotations

import json
import logging
from pathlib import Path

from psycopg import Connection

from .errors import ValidationError
from .pricing import to_money
from .repositories.part_repo import PartRepository

log = logging.getLogger(__name__)


class ImportFileError(Exception):
    pass


def import_parts_json(conn: Connection, path: str | Path, part_repo: PartRepository) -> int:
    """Upsert parts from a JSON list keyed by ``part_number``. Rows without a
    part number or name are skipped."""
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ImportFileError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportFileError("JSON must be a list of objects")

    count = 0
    for index, obj in enumerate(data):
        if not isinstance(obj, dict):
            continue
        part_number = str(obj.get("part_number", "")).strip()
        part_name = str(obj.get("part_name", "")).strip()
        if not part_number or not part_name:
            log.debug("Skipping parts row %s: missing part_number or part_name", index)
            continue
        try:
            quantity = int(obj.get("quantity_in_stock", 0))
            reorder_level = int(obj.get("reorder_level", 0))
        except (TypeError, ValueError) as e:
            raise ImportFileError(f"Row {index} ({part_number}): {e}") from e
        if quantity < 0 or reorder_level < 0:
            raise ImportFileError(f"Row {index} ({part_number}): stock and reorder level must be >= 0")
        try:
            unit_cost = to_money(obj.get("unit_cost", 0))
            selling_price = to_money(obj.get("selling_price", 0))
        except ValidationError as e:
            raise ImportFileError(f"Row {index} ({part_number}): {e}") from e

        part_repo.upsert_by_part_number(
            conn,
            part_number=part_number,
            part_name=part_name,
            quantity_in_stock=quantity,
            reorder_level=reorder_level,
            unit_cost=unit_cost,
            selling_price=selling_price,
            is_active=bool(obj.get("is_active", True)),
        )
        count += 1

    log.info("Imported %s parts from %s", count, p)
    return count
