from .merchants import Merchant, Warehouse, ApiKey, ApiKeyLog
from .auth import User, SessionToken, PasswordResetToken
from .inventory import Product, StockItem, StockMovement, SerialNumber
from .orders import Order, OrderItem, OrderStatusHistory, OrderSplit, Return, ORDER_STATUSES
from .billing import (
    SubscriptionPlan, Subscription, SubscriptionAddon, Service, MerchantServiceSubscription, BillingRecord,
    BILLING_TYPES, BILLING_STATUSES, OUTSTANDING_BILLING_STATUSES,
)
from .communications import Notification
from .webhooks import Webhook, WebhookLog
from .security import AuditLog

__all__ = [
    'Merchant', 'Warehouse', 'ApiKey', 'ApiKeyLog',
    'User', 'SessionToken', 'PasswordResetToken',
    'Product', 'StockItem', 'StockMovement', 'SerialNumber',
    'Order', 'OrderItem', 'OrderStatusHistory', 'OrderSplit', 'Return', 'ORDER_STATUSES',
    'SubscriptionPlan', 'Subscription', 'SubscriptionAddon', 'Service', 'MerchantServiceSubscription',
    'BillingRecord', 'BILLING_TYPES', 'BILLING_STATUSES', 'OUTSTANDING_BILLING_STATUSES',
    'Notification',
    'Webhook', 'WebhookLog',
    'AuditLog',
]
