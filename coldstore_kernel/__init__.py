"""
Cold-Storage Inventory Ledger

Bag-level stock accounting for cold-storage facilities:
- Receipts (incoming stock) and deliveries (withdrawals) as vouchers
- Atomic batch decrements with compare-and-swap updates
- Per-facility voucher numbering from locked counter rows
- Fulfillment tracking and point-in-time stock summaries
"""

__version__ = "0.1.0"
