from prometheus_client import Counter, Histogram

# Business Metrics
ecomm_orders_placed_total = Counter(
    "ecomm_orders_placed_total",
    "Order placements processed",
    ["outcome"] # Labels: 'success', 'rejected', 'failed'
)

ecomm_order_placement_duration_seconds = Histogram(
    "ecomm_order_placement_duration_seconds",
    "Order placement duration in seconds"
)

ecomm_stock_rejections_total = Counter(
    "ecomm_stock_rejections_total",
    "Reservations rejected for insufficient stock"
)

ecomm_order_transitions_total = Counter(
    "ecomm_order_transitions_total",
    "Order status transitions applied",
    ["actor", "status"] # actor: 'vendor', 'courier', 'delivery_agent', 'payment'
)

ecomm_payment_verifications_total = Counter(
    "ecomm_payment_verifications_total",
    "Payment verification attempts",
    ["outcome"] # 'captured', 'replayed', 'invalid_signature', 'failed'
)

ecomm_courier_events_total = Counter(
    "ecomm_courier_events_total",
    "Courier webhook events",
    ["outcome"] # 'applied', 'duplicate', 'stale', 'rejected'
)

ecomm_delivery_assignments_total = Counter(
    "ecomm_delivery_assignments_total",
    "Delivery agent assignment actions",
    ["action"] # 'accepted', 'conflict', 'completed', 'released'
)

ecomm_side_effect_failures_total = Counter(
    "ecomm_side_effect_failures_total",
    "Best-effort post-commit side effects that failed",
    ["effect"] # 'invoice', 'cart_cleanup', 'notification'
)
