# Overview: Inventory items and the read side of the ledger.

from __future__ import annotations

from datetime import datetime

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Farm, InventoryItem, InventoryTransaction
from .concurrency import run_with_retry
from .ledger_service import _entry_inner, to_decimal
"""
Inventory Items & Ledger Queries

- Items are created with a zero balance; a non-zero initial stock is booked
  as an IN transaction ("Estoque inicial") in the same DB transaction.
- update_item never touches quantity; balance changes go through
  ledger_service.
- Transaction listings are newest first (date desc, id desc).
- Date-range filters are inclusive on both ends.
"""

INITIAL_STOCK_NOTE = "Estoque inicial"

UPDATABLE_FIELDS = ("name", "category", "unit", "minimum_level")


def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def get_item_farm_id(item_id: int) -> int | None:
    """farm_id of an item without loading it, for route-level access checks."""
    row = db.session.query(InventoryItem.farm_id).filter(InventoryItem.id == item_id).first()
    return row[0] if row else None


def list_items(farm_id: int, *, category: str | None = None) -> list[InventoryItem]:
    query = db.session.query(InventoryItem).filter(InventoryItem.farm_id == farm_id)
    if category:
        query = query.filter(InventoryItem.category == category)
    return query.order_by(InventoryItem.name, InventoryItem.id).all()


def create_item(
    *,
    farm_id: int,
    actor_id: int,
    name: str,
    category: str,
    unit: str,
    minimum_level=None,
    initial_quantity=None,
) -> InventoryItem:
    """
    Create an item on farm_id.

    initial_quantity > 0 is recorded through the ledger so the first
    transaction explains the opening balance.
    """
    if not all((name, category, unit)):
        raise ValidationError("name, category and unit are required")

    qty = to_decimal(initial_quantity, "quantity") if initial_quantity is not None else None
    if qty is not None and qty < 0:
        raise ValidationError("Initial quantity cannot be negative")

    def _op():
        if db.session.get(Farm, farm_id) is None:
            raise NotFoundError(f"Farm {farm_id} not found")

        item = InventoryItem(
            farm_id=farm_id,
            name=name,
            category=category,
            unit=unit,
            minimum_level=minimum_level,
        )
        db.session.add(item)
        db.session.flush()

        if qty:
            _entry_inner(item, quantity=qty, actor_id=actor_id, notes=INITIAL_STOCK_NOTE)

        db.session.commit()
        return item

    return run_with_retry(_op)


def update_item(item_id: int, patch: dict) -> InventoryItem:
    """Apply a validated patch of descriptive fields. quantity is rejected."""
    if "quantity" in patch or "_quantity" in patch:
        raise ValidationError("quantity is changed through entries, withdrawals and adjustments")

    unknown = set(patch) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        item = get_item(item_id)
        for key, value in patch.items():
            setattr(item, key, value)
        db.session.commit()
        return item

    return run_with_retry(_op)


def get_critical_items(farm_id: int | None = None) -> list[InventoryItem]:
    """Items with a minimum level set and quantity at or below it."""
    query = db.session.query(InventoryItem).filter(
        InventoryItem.minimum_level.isnot(None),
        InventoryItem.quantity <= InventoryItem.minimum_level,
    )
    if farm_id is not None:
        query = query.filter(InventoryItem.farm_id == farm_id)
    return query.order_by(InventoryItem.farm_id, InventoryItem.name).all()


def _newest_first(query):
    return query.order_by(InventoryTransaction.date.desc(), InventoryTransaction.id.desc())


def list_transactions_by_item(item_id: int, *, limit: int | None = None) -> list[InventoryTransaction]:
    get_item(item_id)
    query = _newest_first(db.session.query(InventoryTransaction).filter(InventoryTransaction.item_id == item_id))
    if limit:
        query = query.limit(limit)
    return query.all()


def list_transactions_by_farm(
    farm_id: int,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[InventoryTransaction]:
    """All of a farm's transactions, optionally within [start, end]."""
    if start is not None and end is not None and start > end:
        raise ValidationError("from must not be after to")

    query = db.session.query(InventoryTransaction).filter(InventoryTransaction.farm_id == farm_id)
    if start is not None:
        query = query.filter(InventoryTransaction.date >= start)
    if end is not None:
        query = query.filter(InventoryTransaction.date <= end)
    return _newest_first(query).all()
