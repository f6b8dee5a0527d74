# backend/farmpro/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication and INVENTORY access on the
farm that owns the data.
- Read operations require READ_ONLY
- Item creation/update and every ledger movement require EDIT
- Routes keyed by item id check the item's own farm

Time semantics:
- from/to accept ISO-8601 datetimes or bare dates; both bounds are inclusive
  and a bare "to" date covers the whole day.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_module_access
from ..errors import FarmProError, NotFoundError, ValidationError, error_response
from ..models import InventoryItem
from ..permissions import AccessLevel, Module
from ..services import inventory_service, ledger_service
from ..validation import ModelValidationPolicy, enforce_rules_inventory_item, json_body, validate_payload
from farmpro.time_utils import parse_range_end, parse_range_start


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "unit", "minimum_level"},
    required_on_create={"name", "category", "unit"},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "unit", "minimum_level"},
)

ITEM_ALIASES = {"minimumLevel": "minimum_level"}

# Scope keys consumed by require_module_access, not item fields
SCOPE_KEYS = ("farmId", "farm_id")


def _item_farm(view_args: dict) -> int:
    item_id = view_args.get("item_id")
    farm_id = inventory_service.get_item_farm_id(item_id) if item_id is not None else None
    if farm_id is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return farm_id


def _ledger_response(tx, item):
    return jsonify({"transaction": tx.to_dict(), "inventory": item.to_dict()}), 201


# =============================================================================
# FARM-SCOPED
# =============================================================================

@inventory_bp.get("/farms/<int:farm_id>/inventory")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.READ_ONLY)
def list_items_route(farm_id: int):
    """Query params: category (optional)."""
    items = inventory_service.list_items(farm_id, category=request.args.get("category"))
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@inventory_bp.post("/farms/<int:farm_id>/inventory")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.EDIT)
def create_item_route(farm_id: int):
    """
    Request body:
    - name, category, unit: str (required)
    - minimumLevel: number (optional)
    - quantity: number (optional) opening balance, booked as an entry
    """
    try:
        payload = {k: v for k, v in json_body().items() if k not in SCOPE_KEYS}
        initial_quantity = payload.pop("quantity", None)

        patch = validate_payload(
            model=InventoryItem,
            payload=payload,
            policy=ITEM_CREATE_POLICY,
            partial=False,
            aliases=ITEM_ALIASES,
        )
        enforce_rules_inventory_item(patch)

        item = inventory_service.create_item(
            farm_id=farm_id,
            actor_id=g.current_user.id,
            name=patch["name"],
            category=patch["category"],
            unit=patch["unit"],
            minimum_level=patch.get("minimum_level"),
            initial_quantity=initial_quantity,
        )
        return jsonify({"item": item.to_dict()}), 201
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create inventory item")
        return jsonify({"message": "Internal server error"}), 500


@inventory_bp.get("/farms/<int:farm_id>/inventory/critical")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.READ_ONLY)
def critical_items_route(farm_id: int):
    items = inventory_service.get_critical_items(farm_id)
    return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200


@inventory_bp.get("/farms/<int:farm_id>/inventory/transactions")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.READ_ONLY)
def farm_transactions_route(farm_id: int):
    """Query params: from, to (inclusive, ISO-8601 or YYYY-MM-DD)."""
    try:
        start = parse_range_start(request.args.get("from"))
        end = parse_range_end(request.args.get("to"))
    except ValueError:
        return error_response(ValidationError("from/to must be ISO-8601 dates"))

    try:
        txs = inventory_service.list_transactions_by_farm(farm_id, start=start, end=end)
        return jsonify({"transactions": [t.to_dict() for t in txs], "count": len(txs)}), 200
    except FarmProError as e:
        return error_response(e)


# =============================================================================
# ITEM-SCOPED
# =============================================================================

@inventory_bp.get("/inventory/<int:item_id>")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.READ_ONLY, farm_resolver=_item_farm)
def get_item_route(item_id: int):
    try:
        return jsonify({"item": inventory_service.get_item(item_id).to_dict()}), 200
    except FarmProError as e:
        return error_response(e)


@inventory_bp.patch("/inventory/<int:item_id>")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.EDIT, farm_resolver=_item_farm)
def update_item_route(item_id: int):
    """
    Descriptive fields only; quantity changes go through the ledger routes.
    An item cannot be moved between farms, so farm_id is rejected here.
    """
    try:
        patch = validate_payload(
            model=InventoryItem,
            payload=json_body(),
            policy=ITEM_UPDATE_POLICY,
            partial=True,
            aliases=ITEM_ALIASES,
        )
        enforce_rules_inventory_item(patch)

        item = inventory_service.update_item(item_id, patch)
        return jsonify({"item": item.to_dict()}), 200
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update inventory item")
        return jsonify({"message": "Internal server error"}), 500


@inventory_bp.get("/inventory/<int:item_id>/transactions")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.READ_ONLY, farm_resolver=_item_farm)
def item_transactions_route(item_id: int):
    limit = request.args.get("limit", type=int)
    try:
        txs = inventory_service.list_transactions_by_item(item_id, limit=limit)
        return jsonify({"transactions": [t.to_dict() for t in txs], "count": len(txs)}), 200
    except FarmProError as e:
        return error_response(e)


@inventory_bp.post("/inventory/<int:item_id>/entry")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.EDIT, farm_resolver=_item_farm)
def entry_route(item_id: int):
    """
    Request body:
    - quantity: number > 0 (required)
    - notes, documentNumber: str (optional)
    - unitPrice: number (optional); totalPrice = quantity * unitPrice
    """
    try:
        data = json_body()
        tx, item = ledger_service.entry(
            item_id,
            data.get("quantity"),
            g.current_user.id,
            notes=data.get("notes"),
            document_number=data.get("documentNumber", data.get("document_number")),
            unit_price=data.get("unitPrice", data.get("unit_price")),
        )
        return _ledger_response(tx, item)
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record inventory entry")
        return jsonify({"message": "Internal server error"}), 500


@inventory_bp.post("/inventory/<int:item_id>/withdrawal")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.EDIT, farm_resolver=_item_farm)
def withdrawal_route(item_id: int):
    """
    Request body:
    - quantity: number > 0, at most the current balance (required)
    - notes, destination: str (optional)

    409 INSUFFICIENT_STOCK carries current_balance and requested.
    """
    try:
        data = json_body()
        tx, item = ledger_service.withdrawal(
            item_id,
            data.get("quantity"),
            g.current_user.id,
            notes=data.get("notes"),
            destination=data.get("destination"),
        )
        return _ledger_response(tx, item)
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record inventory withdrawal")
        return jsonify({"message": "Internal server error"}), 500


@inventory_bp.post("/inventory/<int:item_id>/adjustment")
@require_auth
@require_module_access(Module.INVENTORY, AccessLevel.EDIT, farm_resolver=_item_farm)
def adjustment_route(item_id: int):
    """
    Request body:
    - newQuantity: number >= 0 (required; "quantity" is accepted too)
    - notes: str (optional; defaults to "Ajuste de estoque: <signed delta> <unit>")
    """
    try:
        data = json_body()
        new_quantity = data.get("newQuantity", data.get("new_quantity", data.get("quantity")))
        tx, item = ledger_service.adjustment(
            item_id,
            new_quantity,
            g.current_user.id,
            notes=data.get("notes"),
        )
        return _ledger_response(tx, item)
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record inventory adjustment")
        return jsonify({"message": "Internal server error"}), 500
