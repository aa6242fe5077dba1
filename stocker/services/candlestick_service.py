from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from stocker.models import Candlestick

# Signed 64-bit range of the id column
MIN_ID, MAX_ID = -(2 ** 63), 2 ** 63 - 1
SORTABLE_FIELDS = ("id", "open", "close", "high", "low", "volume", "timestamp", "symbol")


class InvalidSortError(ValueError):
    """Raised when a sort expression names an unknown field or direction."""


@dataclass
class CandlestickPage:
    items: list[Candlestick]
    page: int
    size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return math.ceil(self.total_elements / self.size)

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 0


def parse_sort(sort: Optional[Sequence[str]]) -> list:
    """
    Turn Spring-style sort parameters into ORDER BY clauses.

    Each entry is "field" or "field,asc" / "field,desc". An empty or missing
    list falls back to insertion order.
    """
    clauses = []
    for expression in sort or ():
        parts = [part.strip() for part in expression.split(",") if part.strip()]
        if not parts:
            continue
        field, direction = parts[0], (parts[1].lower() if len(parts) > 1 else "asc")
        if field not in SORTABLE_FIELDS:
            raise InvalidSortError(f"Unsupported sort field '{field}'. Supported values: {', '.join(SORTABLE_FIELDS)}")
        if direction not in ("asc", "desc"):
            raise InvalidSortError(f"Unsupported sort direction '{direction}'. Supported values: asc, desc")
        column = getattr(Candlestick, field)
        clauses.append(column.desc() if direction == "desc" else column.asc())

    # Stable tiebreak so equal sort keys keep insertion order
    clauses.append(Candlestick.id.asc())
    return clauses


class CandlestickQueryService:
    """Read-only access to stored candlesticks. There is no write path."""

    def __init__(self, session: Session):
        self.session = session

    def list_all(self, page: int = 0, size: int = 20, sort: Optional[Sequence[str]] = None) -> CandlestickPage:
        order_by = parse_sort(sort)
        total = self.count()
        offset = page * size
        if offset >= total:
            # Past the last row, including offsets too large for the driver
            return CandlestickPage(items=[], page=page, size=size, total_elements=total)

        items = (
            self.session.query(Candlestick)
            .order_by(*order_by)
            .offset(offset)
            .limit(size)
            .all()
        )
        return CandlestickPage(items=items, page=page, size=size, total_elements=total)

    def get_by_id(self, candlestick_id: int) -> Optional[Candlestick]:
        if not MIN_ID <= candlestick_id <= MAX_ID:
            return None
        return self.session.get(Candlestick, candlestick_id)

    def find_by_symbol(self, symbol: str) -> list[Candlestick]:
        """Exact, case-sensitive match on the symbol column."""
        return (
            self.session.query(Candlestick)
            .filter(Candlestick.symbol == symbol)
            .order_by(Candlestick.id.asc())
            .all()
        )

    def count(self) -> int:
        return self.session.query(Candlestick).count()
