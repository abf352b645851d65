"""
Notice Ledger - municipal tax notice reconciliation core.

Keeps a notice's total, paid amount and status consistent under
concurrent writes from:
- Manual cashier payments
- External collector API payments (idempotent on reference id)
- Hierarchical reduction approvals

Every mutation is a single database transaction serialized on the
notice row, and every mutation leaves an audit trail.
"""

__version__ = "0.1.0"
