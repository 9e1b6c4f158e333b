"""Catalog and currency data models."""

from dataclasses import dataclass


@dataclass
class CatalogNode:
    """A catalog entry: a category (no price) or an orderable service."""

    id: str
    name: str | None
    parent_id: str | None = None
    price: float | None = None

    @property
    def is_orderable(self) -> bool:
        return self.price is not None and self.price > 0


@dataclass
class Currency:
    """Currency used for rendering prices."""

    symbol: str
    code: str
    name: str = ""
    rate: float = 1.0
    is_active: bool = False


DEFAULT_CURRENCY = Currency(symbol="$", code="USD", name="US Dollar", rate=1.0)
