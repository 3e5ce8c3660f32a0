"""Generic SQLAlchemy 2.x repository.

Repositories are persistence-only: they run queries and guarded updates
against the session they were given (or the Flask-scoped one) and never
commit or roll back. The Unit of Work and the refresh stores own
transactions.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import select
from sqlalchemy.orm import InstrumentedAttribute, Session

from sessionauth.core.extensions import db

E = TypeVar("E")  # mapped entity


class BaseRepository(Generic[E]):
    """Primary-key lookups and whitelisted equality filters for one model.

    Subclasses set ``model`` and may override :meth:`_filterable_fields`
    and :meth:`_default_order`.
    """

    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        """The injected session, else ``db.session``."""
        return self._session if self._session is not None else cast(Session, db.session)

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        """Public filter name → column. Names outside this map are ignored."""
        return {}

    def _default_order(self) -> tuple[InstrumentedAttribute[Any], ...]:
        return ()

    def add(self, instance: E) -> E:
        """Stage ``instance`` and flush so server defaults and keys are populated."""
        self.session.add(instance)
        self.flush()
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Load by primary key, re-reading the row even if it is already in the session."""
        return self.session.get(self.model, entity_id, populate_existing=True)

    def find_all(self, **filters: Any) -> Sequence[E]:
        """Rows matching every whitelisted ``column == value`` filter, in default order.

        :param filters: Equality filters; unknown names are dropped.
        :returns: Matching entities (possibly empty).
        """
        columns = self._filterable_fields()
        stmt = select(self.model).where(
            *(columns[name] == value for name, value in filters.items() if name in columns)
        )
        if order := self._default_order():
            stmt = stmt.order_by(*order)
        return cast(Sequence[E], self.session.execute(stmt).scalars().all())

    def flush(self) -> None:
        self.session.flush()
