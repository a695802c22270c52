"""Pure domain types for the fulfillment kernel: DTOs and the clock."""

from fulfillment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fulfillment_kernel.domain.dtos import (
    AllocatedSecret,
    CartLine,
    FulfillmentInfo,
    IngestResult,
    MigrationReport,
    OrderFulfillmentResult,
    SKUAvailability,
    SKUInfo,
    SKUInput,
    SKUSummary,
    StockSnapshot,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "StockSnapshot",
    "SKUInfo",
    "SKUInput",
    "SKUSummary",
    "SKUAvailability",
    "IngestResult",
    "AllocatedSecret",
    "FulfillmentInfo",
    "OrderFulfillmentResult",
    "CartLine",
    "MigrationReport",
]
