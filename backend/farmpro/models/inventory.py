from __future__ import annotations

import enum
from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from farmpro.time_utils import to_utc_z


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class TransactionType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    ADJUST = "ADJUST"


class InventoryItem(db.Model):
    """
    Stocked good on a farm (feed, medicine, seeds, fertilizer, ...).

    QUANTITY:
    The on-hand balance lives in the "quantity" column but is exposed as a
    read-only attribute. The only writer is services.ledger_service, which
    pairs every change with an InventoryTransaction in the same DB
    transaction. Constructing an item with quantity=... raises.

    version_id is an optimistic lock: two writers that read the same
    balance cannot both commit.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.Index("ix_inventory_farm_name", "farm_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    farm_id = db.Column(db.Integer, db.ForeignKey("farms.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)  # feed, medicine, seeds, fertilizer, ...
    unit = db.Column(db.String(32), nullable=False)      # kg, liters, bags, ...

    _quantity = db.Column("quantity", db.Numeric(14, 3), nullable=False, default=Decimal("0"))
    minimum_level = db.Column(db.Numeric(14, 3), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    farm = db.relationship("Farm", backref=db.backref("inventory_items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @hybrid_property
    def quantity(self) -> Decimal:
        return self._quantity if self._quantity is not None else Decimal("0")

    @quantity.expression
    def quantity(cls):
        return cls._quantity

    def _post_balance(self, new_balance: Decimal) -> None:
        """Ledger-only balance write."""
        self._quantity = new_balance

    @property
    def is_critical(self) -> bool:
        return self.minimum_level is not None and self.quantity <= self.minimum_level

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} quantity={self.quantity} farm_id={self.farm_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "farm_id": self.farm_id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "quantity": _num(self.quantity),
            "minimum_level": _num(self.minimum_level),
            "is_critical": self.is_critical,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only ledger row for one balance change.

    Invariants (enforced by ledger_service):
    - IN:     new_balance = previous_balance + quantity
    - OUT:    new_balance = previous_balance - quantity
    - ADJUST: new_balance = target, quantity = |target - previous_balance|
    - quantity is never negative
    Rows are never updated or deleted (guarded by mapper events below).
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_item_date", "item_id", "date"),
        db.Index("ix_invtx_farm_date", "farm_id", "date"),
        db.CheckConstraint("quantity >= 0", name="ck_invtx_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=False, index=True)
    farm_id = db.Column(db.Integer, db.ForeignKey("farms.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.Enum(TransactionType, native_enum=False, length=8), nullable=False, index=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    previous_balance = db.Column(db.Numeric(14, 3), nullable=False)
    new_balance = db.Column(db.Numeric(14, 3), nullable=False)

    unit_price = db.Column(db.Numeric(14, 2), nullable=True)
    total_price = db.Column(db.Numeric(16, 2), nullable=True)

    document_number = db.Column(db.String(64), nullable=True)
    destination = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("InventoryItem", backref=db.backref("transactions", lazy=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "farm_id": self.farm_id,
            "user_id": self.user_id,
            "type": self.type.value,
            "quantity": _num(self.quantity),
            "previous_balance": _num(self.previous_balance),
            "new_balance": _num(self.new_balance),
            "unit_price": _num(self.unit_price),
            "total_price": _num(self.total_price),
            "document_number": self.document_number,
            "destination": self.destination,
            "notes": self.notes,
            "date": to_utc_z(self.date),
            "created_at": to_utc_z(self.created_at),
        }


class LedgerImmutableError(RuntimeError):
    """Raised on any attempt to update or delete a ledger row."""


@event.listens_for(InventoryTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    raise LedgerImmutableError(f"inventory transaction {target.id} is immutable")


@event.listens_for(InventoryTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise LedgerImmutableError(f"inventory transaction {target.id} cannot be deleted")
