"""
fulfillment_services -- process wiring for the fulfillment kernel.

Dependency direction:
    fulfillment_services/ -> fulfillment_kernel/, fulfillment_config/  (allowed)
    fulfillment_kernel/   -> fulfillment_services/                     (FORBIDDEN)
"""

from fulfillment_services.bootstrap import (
    FulfillmentRuntime,
    bootstrap,
    create_engine_from_settings,
)

__all__ = [
    "FulfillmentRuntime",
    "bootstrap",
    "create_engine_from_settings",
]
