# Overview: Inventory ledger; the only code that moves an item's on-hand balance.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction, TransactionType
from farmpro.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
"""
FarmPro Inventory Ledger Invariants (authoritative)

- InventoryItem.quantity changes only here, and every change is paired with
  exactly one InventoryTransaction written in the same DB transaction.
- IN:     new_balance = previous_balance + quantity        (quantity > 0)
- OUT:    new_balance = previous_balance - quantity        (0 < quantity <= previous_balance)
- ADJUST: new_balance = target, quantity = |target - previous_balance| (target >= 0)
- A balance is never negative.
- Transactions are append-only; corrections are new ADJUST rows.

Concurrency:
- Each public operation locks the item row, re-reads the balance, verifies
  preconditions, writes both rows and commits once.
- The item's version_id turns a lost race into StaleDataError on backends
  without row locks; run_with_retry re-runs the whole unit.
"""


QUANTITY_EXPONENT = Decimal("0.001")
PRICE_EXPONENT = Decimal("0.01")


def to_decimal(value, field: str, *, exponent: Decimal = QUANTITY_EXPONENT) -> Decimal:
    """Coerce JSON/CLI input to a finite Decimal rounded to the column scale."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
        if not number.is_finite():
            raise ValidationError(f"{field} must be a finite number")
        return number.quantize(exponent)
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")


def format_quantity(value: Decimal) -> str:
    """50.000 -> '50', 2.500 -> '2.5'."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def default_adjustment_note(delta: Decimal, unit: str) -> str:
    sign = "+" if delta >= 0 else "-"
    return f"Ajuste de estoque: {sign}{format_quantity(abs(delta))} {unit}".rstrip()


def _load_item_locked(item_id: int) -> InventoryItem:
    item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item_id)).first()
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def _post(
    item: InventoryItem,
    *,
    tx_type: TransactionType,
    quantity: Decimal,
    new_balance: Decimal,
    actor_id: int,
    notes: str | None = None,
    document_number: str | None = None,
    destination: str | None = None,
    unit_price: Decimal | None = None,
) -> InventoryTransaction:
    """Write the balance and its transaction row. Flushes; no commit."""
    previous = item.quantity
    total_price = (quantity * unit_price).quantize(PRICE_EXPONENT) if unit_price is not None else None

    tx = InventoryTransaction(
        item_id=item.id,
        farm_id=item.farm_id,
        user_id=actor_id,
        type=tx_type,
        quantity=quantity,
        previous_balance=previous,
        new_balance=new_balance,
        unit_price=unit_price,
        total_price=total_price,
        document_number=document_number,
        destination=destination,
        notes=notes,
        date=utcnow(),
    )
    item._post_balance(new_balance)
    db.session.add(tx)
    db.session.flush()
    return tx


def _entry_inner(
    item: InventoryItem,
    *,
    quantity: Decimal,
    actor_id: int,
    notes: str | None = None,
    document_number: str | None = None,
    unit_price: Decimal | None = None,
) -> InventoryTransaction:
    """Core IN logic without locking, retry or commit.

    Shared by entry() and inventory_service.create_item() for initial stock.
    """
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    if unit_price is not None and unit_price < 0:
        raise ValidationError("Unit price cannot be negative")
    return _post(
        item,
        tx_type=TransactionType.IN,
        quantity=quantity,
        new_balance=item.quantity + quantity,
        actor_id=actor_id,
        notes=notes,
        document_number=document_number,
        unit_price=unit_price,
    )


def _log_posted(tx: InventoryTransaction) -> None:
    current_app.logger.info(
        "Inventory %s on item %s: %s -> %s (user %s)",
        tx.type.value,
        tx.item_id,
        tx.previous_balance,
        tx.new_balance,
        tx.user_id,
    )


def entry(
    item_id: int,
    quantity,
    actor_id: int,
    notes: str | None = None,
    document_number: str | None = None,
    unit_price=None,
) -> tuple[InventoryTransaction, InventoryItem]:
    """Record stock arriving (purchase, harvest, donation). Returns (tx, item)."""
    qty = to_decimal(quantity, "quantity")
    price = to_decimal(unit_price, "unit_price", exponent=PRICE_EXPONENT) if unit_price is not None else None

    def _op():
        item = _load_item_locked(item_id)
        tx = _entry_inner(
            item,
            quantity=qty,
            actor_id=actor_id,
            notes=notes,
            document_number=document_number,
            unit_price=price,
        )
        db.session.commit()
        return tx, item

    tx, item = run_with_retry(_op)
    _log_posted(tx)
    return tx, item


def withdrawal(
    item_id: int,
    quantity,
    actor_id: int,
    notes: str | None = None,
    destination: str | None = None,
) -> tuple[InventoryTransaction, InventoryItem]:
    """
    Record stock leaving (feeding, treatment, field application).

    Raises InsufficientStockError when quantity exceeds the balance read
    under the row lock; nothing is written in that case.
    """
    qty = to_decimal(quantity, "quantity")
    if qty <= 0:
        raise ValidationError("Quantity must be greater than zero")

    def _op():
        item = _load_item_locked(item_id)
        balance = item.quantity
        if qty > balance:
            raise InsufficientStockError(
                item_id=item.id,
                current_balance=balance,
                requested=qty,
                unit=item.unit,
            )
        tx = _post(
            item,
            tx_type=TransactionType.OUT,
            quantity=qty,
            new_balance=balance - qty,
            actor_id=actor_id,
            notes=notes,
            destination=destination,
        )
        db.session.commit()
        return tx, item

    tx, item = run_with_retry(_op)
    _log_posted(tx)
    return tx, item


def adjustment(
    item_id: int,
    new_quantity,
    actor_id: int,
    notes: str | None = None,
) -> tuple[InventoryTransaction, InventoryItem]:
    """
    Set the balance to a counted value.

    The transaction records |delta|; the signed delta goes into the default
    note ("Ajuste de estoque: +50 kg") when notes are not supplied.
    """
    target = to_decimal(new_quantity, "new_quantity")
    if target < 0:
        raise ValidationError("New quantity cannot be negative")

    def _op():
        item = _load_item_locked(item_id)
        delta = target - item.quantity
        tx = _post(
            item,
            tx_type=TransactionType.ADJUST,
            quantity=abs(delta),
            new_balance=target,
            actor_id=actor_id,
            notes=notes or default_adjustment_note(delta, item.unit),
        )
        db.session.commit()
        return tx, item

    tx, item = run_with_retry(_op)
    _log_posted(tx)
    return tx, item
