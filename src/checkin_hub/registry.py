"""
Visitor registry: persistence and lookup of Visitor records.
No business rules live here; every call is its own transaction.
"""

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .errors import ConflictError
from .models import Visitor

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class VisitorRegistry:
    """CRUD access to visitors over one SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, visitor: Visitor) -> uuid.UUID:
        self.db.add(visitor)
        self._commit()
        return visitor.id

    def get(self, visitor_id: uuid.UUID) -> Optional[Visitor]:
        return self.db.get(Visitor, visitor_id)

    def update(self, visitor: Visitor, **changes) -> Visitor:
        """
        Writes `changes` to `visitor`.

        The UPDATE is conditioned on the version the visitor was loaded with;
        if another writer got there first nothing is written and ConflictError
        is raised.
        """
        for key, value in changes.items():
            setattr(visitor, key, value)
        try:
            self._commit()
        except StaleDataError as ex:
            logger.info("Concurrent update lost for visitor %s", visitor.id)
            raise ConflictError(str(ex)) from ex
        return visitor

    def delete(self, visitor_id: uuid.UUID) -> bool:
        visitor = self.get(visitor_id)
        if visitor is None:
            return False
        self.db.delete(visitor)
        try:
            self._commit()
        except StaleDataError as ex:
            raise ConflictError(str(ex)) from ex
        return True

    def query(self, *criteria, order_by: Iterable = (), limit: Optional[int] = None) -> List[Visitor]:
        stmt = select(Visitor)
        if criteria:
            stmt = stmt.where(*criteria)
        stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.scalars(stmt))

    def _commit(self) -> None:
        try:
            self.db.commit()
        except BaseException:
            self.db.rollback()
            raise
