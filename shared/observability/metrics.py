from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_created_total = Counter(
    "ecomm_orders_created_total",
    "Total orders persisted",
    ["payment_method", "payment_status"]  # payment_status: 'pending' or 'failed' at creation
)

ecomm_order_creation_duration_seconds = Histogram(
    "ecomm_order_creation_duration_seconds",
    "Order creation duration in seconds (validation, persistence and payment request)"
)

ecomm_stock_rejections_total = Counter(
    "ecomm_stock_rejections_total",
    "Orders rejected because a product did not have enough stock"
)

ecomm_payment_gateway_errors_total = Counter(
    "ecomm_payment_gateway_errors_total",
    "Payment gateway calls that failed",
    ["operation"]  # Labels: 'create_payment_request', 'get_payment_status'
)

ecomm_webhooks_total = Counter(
    "ecomm_webhooks_total",
    "Payment webhooks received",
    ["outcome"]  # Labels: 'applied', 'duplicate', 'unmatched', 'invalid_signature'
)

ecomm_payment_verifications_total = Counter(
    "ecomm_payment_verifications_total",
    "Client-initiated payment verification polls",
    ["outcome"]  # Labels: 'applied', 'already_completed', 'not_completed'
)

ecomm_notifications_failed_total = Counter(
    "ecomm_notifications_failed_total",
    "Notification emails that could not be delivered",
    ["kind"]
)

ecomm_sessions_booked_total = Counter(
    "ecomm_sessions_booked_total",
    "Therapy sessions booked",
    ["session_type", "payment_method", "payment_status"]
)
