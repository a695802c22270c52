"""
Fulfillment Kernel

The allocation and consistency core behind order fulfillment:
- Per-SKU stock ledger (total / locked / sold)
- Secret pool with at-most-once allocation
- SKU resolution with single-SKU fallback
- Exactly-once fulfillment per order item
- Idempotent migration of legacy single-SKU products
"""

__version__ = "0.1.0"
