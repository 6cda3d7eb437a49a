from .tenancy import Tenant, User
from .catalog import Category, Product
from .customers import Customer, Asset
from .inventory import InventoryMovement
from .documents import DocumentSequence
from .orders import ServiceOrder, ServiceOrderItem, ServiceOrderEvent
from .sales import SalesOrder, SalesOrderItem, Payment
from .webhooks import Webhook, WebhookLog
from .notifications import Notification

__all__ = [
    'Tenant', 'User',
    'Category', 'Product',
    'Customer', 'Asset',
    'InventoryMovement',
    'DocumentSequence',
    'ServiceOrder', 'ServiceOrderItem', 'ServiceOrderEvent',
    'SalesOrder', 'SalesOrderItem', 'Payment',
    'Webhook', 'WebhookLog',
    'Notification',
]
