"""Read-only selectors."""

from fulfillment_kernel.selectors.base import BaseSelector
from fulfillment_kernel.selectors.inventory_selector import InventorySelector

__all__ = ["BaseSelector", "InventorySelector"]
