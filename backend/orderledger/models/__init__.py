from .auth import AccessLevel, User, UserModuleAccess
from .inventory import (
    ItemType, MovementKind, ReferenceType, WasteType, InventoryOperation,
    INBOUND_KINDS, OUTBOUND_KINDS,
    StockItem, StockMovement, ProcessedGood, ProcessedGoodWaste, InventoryChange,
)
from .sales import (
    OrderStatus, PaymentStatus, PaymentMode, PaymentTo, LockAction, AuditEventType,
    Order, OrderItem, OrderPayment, OrderLockEvent, OrderAuditEvent,
)
from .finance import Income
from .documents import DocumentSequence

__all__ = [
    'AccessLevel', 'User', 'UserModuleAccess',
    'ItemType', 'MovementKind', 'ReferenceType', 'WasteType', 'InventoryOperation',
    'INBOUND_KINDS', 'OUTBOUND_KINDS',
    'StockItem', 'StockMovement', 'ProcessedGood', 'ProcessedGoodWaste', 'InventoryChange',
    'OrderStatus', 'PaymentStatus', 'PaymentMode', 'PaymentTo', 'LockAction', 'AuditEventType',
    'Order', 'OrderItem', 'OrderPayment', 'OrderLockEvent', 'OrderAuditEvent',
    'Income',
    'DocumentSequence',
]
