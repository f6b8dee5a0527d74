from .auth import User, SessionToken
from .farms import Farm, UserFarm, UserPermission
from .inventory import InventoryItem, InventoryTransaction, TransactionType, LedgerImmutableError
from .security import SecurityEvent

__all__ = [
    'User', 'SessionToken',
    'Farm', 'UserFarm', 'UserPermission',
    'InventoryItem', 'InventoryTransaction', 'TransactionType', 'LedgerImmutableError',
    'SecurityEvent',
]
