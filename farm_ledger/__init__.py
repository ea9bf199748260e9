"""
Farm Ledger - posting engine for a multi-tenant farm-management system.

Turns operational farm events (inventory adjustments, feedings, purchase
order receipts, livestock purchases and sales, site transfers) into
balanced, immutable double-entry ledger transactions with:
- At-most-one concurrent poster per event (conditional status update)
- Idempotent posting keyed on tenant, event, payload and profile version
- Atomic transaction + entries writes
- Weighted-average inventory side effects with an auditable movement trail
- Best-effort automatic reorder requisitions
"""

__version__ = "0.1.0"
