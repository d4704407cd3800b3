from __future__ import annotations

import logging

from psycopg import Connection

from ..db import Db
from ..domain import Part
from ..errors import BadRequestError, InsufficientStockError, NotFoundError, ValidationError
from ..repositories.part_repo import PartRepository

log = logging.getLogger(__name__)


def _positive(quantity: int, what: str = "Quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{what} must be an integer.")
    if quantity <= 0:
        raise ValidationError(f"{what} must be > 0.")
    return quantity


class InventoryLedger:
    """Owns every change to ``part.quantity_in_stock``.

    ``reserve`` and ``release`` run on the caller's connection so that the
    stock change commits or rolls back together with the caller's line write.
    """

    def __init__(self, db: Db, *, part_repo: PartRepository) -> None:
        self.db = db
        self.part_repo = part_repo

    def reserve(self, conn: Connection, part_id: int, quantity: int) -> int:
        _positive(quantity)
        remaining = self.part_repo.decrease_stock(conn, part_id=part_id, qty=quantity)
        if remaining is None:
            part = self.part_repo.get(conn, part_id)
            if part is None:
                raise NotFoundError("Part", part_id)
            raise InsufficientStockError(part_id, part.quantity_in_stock, quantity, part.part_name)
        log.debug("Reserved %s x part %s, %s left", quantity, part_id, remaining)
        return remaining

    def release(self, conn: Connection, part_id: int, quantity: int) -> int:
        _positive(quantity)
        stock = self.part_repo.increase_stock(conn, part_id=part_id, qty=quantity)
        if stock is None:
            raise NotFoundError("Part", part_id)
        log.debug("Released %s x part %s, stock now %s", quantity, part_id, stock)
        return stock

    def get_part(self, part_id: int) -> Part:
        with self.db.session() as conn:
            part = self.part_repo.get(conn, part_id)
        if part is None:
            raise NotFoundError("Part", part_id)
        return part

    def low_stock(self) -> list[Part]:
        with self.db.session() as conn:
            return self.part_repo.list_low_stock(conn)

    def adjust_stock(self, part_id: int, adjustment: int, reason: str | None = None) -> Part:
        """Manual correction (count, damage, delivery outside purchase orders)."""
        if isinstance(adjustment, bool) or not isinstance(adjustment, int) or adjustment == 0:
            raise ValidationError("Adjustment must be a non-zero integer.")

        with self.db.transaction() as conn:
            if adjustment > 0:
                self.release(conn, part_id, adjustment)
            else:
                try:
                    self.reserve(conn, part_id, -adjustment)
                except InsufficientStockError as e:
                    raise BadRequestError(
                        "Stock adjustment would result in negative quantity "
                        f"(current: {e.available}, adjustment: {adjustment})"
                    ) from e
            part = self.part_repo.get(conn, part_id)

        log.info("Stock of part %s adjusted by %+d (%s)", part_id, adjustment, reason or "no reason given")
        return part
