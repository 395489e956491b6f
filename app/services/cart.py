from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any

from app.services.errors import CartError

logger = logging.getLogger(__name__)

OUT_OF_STOCK_MESSAGE = "This item is out of stock"
STOCK_LIMIT_MESSAGE = "Cannot add more of this item - stock limit reached"


class StateStorage(ABC):
    """Persistence port for client-side state (cart, wishlist)."""

    @abstractmethod
    def load(self) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def save(self, items: list[dict[str, Any]]) -> None:
        ...


class InMemoryStorage(StateStorage):
    def __init__(self, items: list[dict[str, Any]] | None = None) -> None:
        self._items = [dict(item) for item in items or []]

    def load(self) -> list[dict[str, Any]]:
        return [dict(item) for item in self._items]

    def save(self, items: list[dict[str, Any]]) -> None:
        self._items = [dict(item) for item in items]


class JsonFileStorage(StateStorage):
    """JSON file keyed by state name, the server-side analogue of browser local storage."""

    def __init__(self, path: Path, key: str) -> None:
        self.path = Path(path)
        self.key = key

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable state file path=%s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def load(self) -> list[dict[str, Any]]:
        items = self._read_all().get(self.key) or []
        return [item for item in items if isinstance(item, dict)]

    def save(self, items: list[dict[str, Any]]) -> None:
        data = self._read_all()
        data[self.key] = items
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")


@dataclass
class CartLine:
    id: str
    name: str
    price: Decimal
    quantity: int
    stock: int
    image: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            price=Decimal(str(data.get("price") or 0)),
            quantity=int(data.get("quantity") or 0),
            stock=int(data.get("stock") or 0),
            image=data.get("image"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["price"] = str(self.price)
        return payload

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class Cart:
    """Cart state for one shopper, persisted through the injected storage."""

    def __init__(self, storage: StateStorage) -> None:
        self._storage = storage
        self._lines: list[CartLine] = [CartLine.from_dict(item) for item in storage.load()]

    @property
    def items(self) -> list[CartLine]:
        return list(self._lines)

    def _find(self, item_id: str) -> CartLine | None:
        item_id = str(item_id)
        return next((line for line in self._lines if line.id == item_id), None)

    def _persist(self) -> None:
        self._storage.save([line.to_dict() for line in self._lines])

    def add_item(
        self,
        *,
        id: str,
        name: str,
        price: Decimal | float | str,
        stock: int,
        image: str | None = None,
    ) -> CartLine:
        if stock <= 0:
            raise CartError(OUT_OF_STOCK_MESSAGE)

        existing = self._find(id)
        if existing is not None:
            if existing.quantity >= existing.stock:
                raise CartError(STOCK_LIMIT_MESSAGE)
            existing.quantity += 1
            self._persist()
            return existing

        line = CartLine(
            id=str(id),
            name=name,
            price=Decimal(str(price)),
            quantity=1,
            stock=stock,
            image=image,
        )
        self._lines.append(line)
        self._persist()
        return line

    def remove_item(self, item_id: str) -> None:
        self._lines = [line for line in self._lines if line.id != str(item_id)]
        self._persist()

    def update_quantity(self, item_id: str, quantity: int) -> None:
        if quantity < 0:
            raise CartError("Quantity cannot be negative")

        line = self._find(item_id)
        if line is None:
            return
        if quantity > line.stock:
            raise CartError(STOCK_LIMIT_MESSAGE)

        if quantity == 0:
            self.remove_item(item_id)
            return
        line.quantity = quantity
        self._persist()

    def clear(self) -> None:
        self._lines = []
        self._persist()

    def total_items(self) -> int:
        return sum(line.quantity for line in self._lines)

    def get_total(self) -> Decimal:
        return sum((line.subtotal for line in self._lines), Decimal("0"))

    def apply_discount(self, amount: Decimal | float | str) -> Decimal:
        discounted = self.get_total() - Decimal(str(amount))
        return max(Decimal("0"), discounted)


@dataclass
class WishlistItem:
    id: str
    name: str
    price: Decimal
    image: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WishlistItem":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            price=Decimal(str(data.get("price") or 0)),
            image=data.get("image"),
        )

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["price"] = str(self.price)
        return payload


class Wishlist:
    def __init__(self, storage: StateStorage) -> None:
        self._storage = storage
        self._items: list[WishlistItem] = [WishlistItem.from_dict(item) for item in storage.load()]

    @property
    def items(self) -> list[WishlistItem]:
        return list(self._items)

    def _persist(self) -> None:
        self._storage.save([item.to_dict() for item in self._items])

    def add_item(self, item: WishlistItem) -> None:
        if self.is_in_wishlist(item.id):
            return
        self._items.append(item)
        self._persist()

    def remove_item(self, item_id: str) -> None:
        self._items = [item for item in self._items if item.id != str(item_id)]
        self._persist()

    def is_in_wishlist(self, item_id: str) -> bool:
        return any(item.id == str(item_id) for item in self._items)

    def clear(self) -> None:
        self._items = []
        self._persist()
