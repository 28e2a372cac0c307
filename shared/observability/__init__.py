from .setup import setup_observability
from .metrics import (
    ecomm_orders_created_total,
    ecomm_order_creation_duration_seconds,
    ecomm_stock_rejections_total,
    ecomm_payment_gateway_errors_total,
    ecomm_webhooks_total,
    ecomm_payment_verifications_total,
    ecomm_notifications_failed_total,
    ecomm_sessions_booked_total
)
