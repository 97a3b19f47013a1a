"""
POS Ledger - point-of-sale inventory ledger

A multi-line sale engine over a transactional catalog store with:
- All-or-nothing sale commits
- Atomic conditional stock decrements (no oversell)
- Deterministic blame for insufficient stock
- Optional idempotency keys for safe retries
"""

__version__ = "0.1.0"
