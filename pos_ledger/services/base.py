"""
BaseService -- abstract base for session-bound services.

Responsibility:
    Common constructor for every service that works inside a caller-owned
    transaction.  Services persist with ``session.flush()`` and never call
    ``session.commit()`` or ``session.rollback()``; the caller's
    ``transaction_scope`` owns the boundary, which is what lets the sale
    engine combine stock decrements and sale rows into one atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from pos_ledger.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for session-bound services.

    Contract:
        Accepts an open SQLAlchemy ``Session`` and flushes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
