"""Record store over Flask-SQLAlchemy.

Criteria are SQLAlchemy filter expressions (``Game.status == 'WAITING'``).
Every write commits its own transaction, so two updates to the same record
never interleave partial field writes. ``update_many`` doubles as the
conditional update used for race-free state transitions: the caller puts
the expected current state in the criteria and checks the returned count.
"""

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from chessmatch import db

Record = TypeVar('Record', bound=db.Model)


class RecordStore(Generic[Record]):

    def __init__(self, model: Type[Record]) -> None:
        self.model = model

    def create(self, **fields) -> Record:
        record = self.model(**fields)
        db.session.add(record)
        self._commit()
        return record

    def find_by_id(self, record_id) -> Optional[Record]:
        if record_id is None:
            return None
        return db.session.get(self.model, record_id)

    def find_first(self, *criteria, order_by=None) -> Optional[Record]:
        query = db.select(self.model).where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        return db.session.scalars(query.limit(1)).first()

    def find_many(self, *criteria, order_by=None) -> list[Record]:
        query = db.select(self.model).where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        return list(db.session.scalars(query))

    def update(self, record_id, **fields) -> Optional[Record]:
        record = self.find_by_id(record_id)
        if record is None:
            return None
        for name, value in fields.items():
            setattr(record, name, value)
        self._commit()
        return record

    def update_many(self, *criteria, **fields) -> int:
        """Apply ``fields`` to every record matching ``criteria`` in one statement."""
        statement = (
            db.update(self.model)
            .where(*criteria)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        try:
            count = db.session.execute(statement).rowcount
        except SQLAlchemyError:
            db.session.rollback()
            raise
        self._commit()
        # Identity-mapped copies are stale after a bulk UPDATE
        db.session.expire_all()
        return count

    def _commit(self) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
