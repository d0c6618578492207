"""Inventory of food, medicine, substrate and equipment."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Callable

from .config import MAX_STOCK_ITEMS
from .errors import (
    InsufficientStockError,
    InvalidParameterError,
    NotFoundError,
    OutOfCapacityError,
)

NEAR_EXPIRY_SECONDS = 7 * 24 * 60 * 60

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"


class StockType(IntEnum):
    """Category of a stock item."""

    FOOD = 0
    MEDICINE = 1
    SUBSTRATE = 2
    EQUIPMENT = 3
    SUPPLEMENT = 4
    OTHER = 5


class StockUnit(IntEnum):
    """Unit a quantity is measured in."""

    PIECES = 0
    GRAMS = 1
    KILOGRAMS = 2
    MILLILITERS = 3
    LITERS = 4
    METERS = 5


@dataclass
class StockItem:
    """An article held in stock."""

    name: str = ""
    description: str = ""
    type: StockType = StockType.FOOD
    unit: StockUnit = StockUnit.PIECES
    current_quantity: float = 0.0
    min_quantity: float = 0.0
    max_quantity: float = 0.0
    unit_price: float = 0.0
    supplier: str = ""
    batch_number: str = ""
    expiry_date: int = 0
    last_restocked: int = 0
    alert_enabled: bool = True
    expired_alert: bool = False
    storage_location: str = ""
    notes: str = ""
    id: int = 0
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self) -> None:
        try:
            self.type = StockType(self.type)
            self.unit = StockUnit(self.unit)
        except ValueError as exc:
            raise InvalidParameterError(str(exc)) from None

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.min_quantity

    def is_expired(self, now: int) -> bool:
        return self.expiry_date != 0 and self.expiry_date < now

    def is_near_expiry(self, now: int) -> bool:
        return self.expiry_date != 0 and now <= self.expiry_date <= now + NEAR_EXPIRY_SECONDS


@dataclass
class StockMovement:
    """One entry, withdrawal or adjustment of an item's quantity."""

    id: int
    item_id: int
    transaction_date: int
    transaction_type: str
    quantity: float
    unit_price: float = 0.0
    reason: str = ""
    reference: str = ""
    user_id: int = 0


@dataclass
class StockAlert:
    """An item needing attention: low, expired or close to expiry."""

    item_id: int
    item_name: str
    type: StockType
    current_quantity: float
    min_quantity: float
    expiry_date: int
    is_low_stock: bool
    is_expired: bool
    is_near_expiry: bool


def _empty_type_counts() -> dict[StockType, int]:
    return {stock_type: 0 for stock_type in StockType}


@dataclass
class StockStats:
    """Aggregated figures over the whole inventory."""

    total_items: int = 0
    low_stock_items: int = 0
    expired_items: int = 0
    near_expiry_items: int = 0
    total_stock_value: float = 0.0
    movements_today: int = 0
    items_by_type: dict[StockType, int] = field(default_factory=_empty_type_counts)
    last_restock_date: int = 0


class StockManager:
    """In-memory inventory with a fixed capacity."""

    def __init__(
        self,
        capacity: int = MAX_STOCK_ITEMS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 0:
            raise InvalidParameterError("capacity must not be negative")
        self._capacity = capacity
        self._clock = clock
        self._items: list[StockItem] = []
        self._movements: list[StockMovement] = []
        self._next_id = 1
        self._next_movement_id = 1

    def __len__(self) -> int:
        return len(self._items)

    def _now(self) -> int:
        return int(self._clock())

    def _find(self, item_id: int) -> StockItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise NotFoundError(f"no stock item with id {item_id}")

    @staticmethod
    def _limit(max_count: int | None) -> int | None:
        if max_count is not None and max_count < 0:
            raise InvalidParameterError("max_count must not be negative")
        return max_count

    def _record(self, item: StockItem, kind: str, quantity: float,
                unit_price: float = 0.0, reason: str | None = None,
                reference: str | None = None) -> None:
        self._movements.append(
            StockMovement(
                id=self._next_movement_id,
                item_id=item.id,
                transaction_date=item.updated_at,
                transaction_type=kind,
                quantity=quantity,
                unit_price=unit_price,
                reason=reason or "",
                reference=reference or "",
            )
        )
        self._next_movement_id += 1

    def add_item(self, item: StockItem) -> StockItem:
        """Store ``item``, giving it a fresh id and timestamps, and return it."""
        if item is None:
            raise InvalidParameterError("item is required")
        if len(self._items) >= self._capacity:
            raise OutOfCapacityError("maximum number of stock items reached")
        item.id = self._next_id
        self._next_id += 1
        item.created_at = self._now()
        item.updated_at = item.created_at
        self._items.append(replace(item))
        return item

    def update_item(self, item: StockItem) -> None:
        """Replace the stored item that has ``item.id``."""
        if item is None:
            raise InvalidParameterError("item is required")
        for index, stored in enumerate(self._items):
            if stored.id == item.id:
                updated = replace(item)
                updated.updated_at = self._now()
                self._items[index] = updated
                return
        raise NotFoundError(f"no stock item with id {item.id}")

    def delete_item(self, item_id: int) -> None:
        """Remove an item, keeping the order of the others."""
        self._items.remove(self._find(item_id))

    def get_item(self, item_id: int) -> StockItem:
        """Return a copy of the item with ``item_id``."""
        return replace(self._find(item_id))

    def all_items(self, max_count: int | None = None) -> list[StockItem]:
        """Return copies of the items in insertion order, at most ``max_count``."""
        return [replace(item) for item in self._items[: self._limit(max_count)]]

    def add_quantity(self, item_id: int, quantity: float, unit_price: float,
                     reference: str | None = None) -> None:
        """Receive stock at ``unit_price``."""
        item = self._find(item_id)
        now = self._now()
        item.current_quantity += quantity
        item.unit_price = unit_price
        item.last_restocked = now
        item.updated_at = now
        self._record(item, MOVEMENT_IN, quantity, unit_price, reference=reference)

    def remove_quantity(self, item_id: int, quantity: float, reason: str | None = None) -> None:
        """Withdraw stock; fails if less than ``quantity`` is available."""
        item = self._find(item_id)
        if item.current_quantity < quantity:
            raise InsufficientStockError(f"insufficient stock for item {item_id}")
        item.current_quantity -= quantity
        item.updated_at = self._now()
        self._record(item, MOVEMENT_OUT, quantity, item.unit_price, reason=reason)

    def adjust_quantity(self, item_id: int, new_quantity: float, reason: str | None = None) -> None:
        """Set the quantity after a count; the movement records the difference."""
        item = self._find(item_id)
        delta = new_quantity - item.current_quantity
        item.current_quantity = new_quantity
        item.updated_at = self._now()
        self._record(item, MOVEMENT_ADJUSTMENT, delta, item.unit_price, reason=reason)

    def movements(self, item_id: int, max_count: int | None = None) -> list[StockMovement]:
        """Return the movements of one item, oldest first."""
        limit = self._limit(max_count)
        history = [replace(m) for m in self._movements if m.item_id == item_id]
        return history[:limit]

    def alerts(self, max_count: int | None = None) -> list[StockAlert]:
        """Return alerts for alert-enabled items that are low, expired or near expiry."""
        limit = self._limit(max_count)
        now = self._now()
        found: list[StockAlert] = []
        for item in self._items:
            if not item.alert_enabled:
                continue
            low = item.is_low_stock
            expired = item.is_expired(now)
            near = item.is_near_expiry(now)
            if low or expired or near:
                found.append(
                    StockAlert(
                        item_id=item.id,
                        item_name=item.name,
                        type=item.type,
                        current_quantity=item.current_quantity,
                        min_quantity=item.min_quantity,
                        expiry_date=item.expiry_date,
                        is_low_stock=low,
                        is_expired=expired,
                        is_near_expiry=near,
                    )
                )
        return found[:limit]

    def check_alerts(self) -> list[StockAlert]:
        """Flag expired items and return the current alerts."""
        now = self._now()
        for item in self._items:
            item.expired_alert = item.is_expired(now)
        return self.alerts()

    def stats(self) -> StockStats:
        """Compute inventory statistics."""
        now = self._now()
        today = time.localtime(now)[:3]
        result = StockStats(total_items=len(self._items))
        for item in self._items:
            if item.is_low_stock:
                result.low_stock_items += 1
            if item.is_expired(now):
                result.expired_items += 1
            if item.is_near_expiry(now):
                result.near_expiry_items += 1
            result.total_stock_value += item.current_quantity * item.unit_price
            result.items_by_type[item.type] += 1
            result.last_restock_date = max(result.last_restock_date, item.last_restocked)
        result.movements_today = sum(
            1 for m in self._movements if time.localtime(m.transaction_date)[:3] == today
        )
        return result