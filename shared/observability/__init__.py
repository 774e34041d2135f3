from .setup import setup_observability, configure_logging
from .metrics import (
    ecomm_orders_placed_total,
    ecomm_order_placement_duration_seconds,
    ecomm_stock_rejections_total,
    ecomm_order_transitions_total,
    ecomm_payment_verifications_total,
    ecomm_courier_events_total,
    ecomm_delivery_assignments_total,
    ecomm_side_effect_failures_total,
)
