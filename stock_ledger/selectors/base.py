"""
Module: stock_ledger.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the ledger, providing structured read access without
    mutation capability.
Architecture position: Ledger > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses or computed
      results, NOT raw ORM model instances.
    - Session ownership: the caller owns the session and its transaction.
    - No repair on read: selectors return whatever balances are stored.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_ledger.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        """
        Initialize the selector.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
