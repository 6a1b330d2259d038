"""
BaseService -- abstract base for ledger write-side collaborators.

Responsibility:
    Provides the common constructor and session-handling contract for
    services that write ledger rows.  Concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  LedgerEngine owns
    commit/rollback so that a mutation and its recomputation sweep are one
    atomic unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_ledger.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write-side services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide DTO-returning reads -- those belong in
          ``stock_ledger/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
