"""
Inventory module.

Items, their purchase/release ledger, serial numbers for products, and the
CSV/JSON exports.
"""
