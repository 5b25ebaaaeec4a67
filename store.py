"""Metadata store client.

A collection-oriented facade over Flask-SQLAlchemy: records go in and come
out as plain dicts, timestamps are stamped server-side, and counters change
through a single UPDATE so concurrent increments are never lost.
"""
import logging

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from errors import NotFound, StoreUnavailable, ValidationError
from models import COLLECTIONS, new_id
from utils import utcnow

log = logging.getLogger(__name__)


class MetadataStore:
    def __init__(self, db, clock=utcnow):
        self.db = db
        self.clock = clock

    @property
    def session(self):
        return self.db.session

    def _model(self, collection):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection}") from None

    @staticmethod
    def _column(model, field):
        if field not in model.__table__.columns:
            raise ValidationError(f"Unknown field {field!r} for {model.__tablename__}")
        return getattr(model, field)

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            log.exception("Store %s failed", action)
            raise StoreUnavailable() from exc

    def create(self, collection, data):
        model = self._model(collection)
        values = dict(data)
        values.setdefault("id", new_id())
        now = self.clock()
        for stamp in ("created_at", "updated_at", "timestamp"):
            if stamp in model.__table__.columns:
                values.setdefault(stamp, now)
        for field in values:
            self._column(model, field)
        try:
            self.session.add(model(**values))
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc
        self._commit(f"create in {collection}")
        return values["id"]

    def get(self, collection, record_id):
        model = self._model(collection)
        try:
            record = self.session.get(model, record_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable() from exc
        return record.to_dict() if record is not None else None

    def update(self, collection, record_id, patch):
        model = self._model(collection)
        try:
            record = self.session.get(model, record_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable() from exc
        if record is None:
            raise NotFound(f"No {collection} record {record_id}")
        for field, value in patch.items():
            self._column(model, field)
            setattr(record, field, value)
        if "updated_at" in model.__table__.columns:
            record.updated_at = self.clock()
        self._commit(f"update in {collection}")

    def delete(self, collection, record_id):
        model = self._model(collection)
        try:
            record = self.session.get(model, record_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable() from exc
        if record is None:
            raise NotFound(f"No {collection} record {record_id}")
        self.session.delete(record)
        self._commit(f"delete in {collection}")

    def query(self, collection, filters=None, order_by=None, direction="asc", limit=None, cursor=None):
        """Records matching all equality ``filters``.

        Ordering is on ``order_by`` with the id as tiebreak in the same
        direction, so the order is total and repeatable. ``cursor`` is the
        last record of the previous page; the result starts strictly after it.
        """
        model = self._model(collection)
        descending = direction == "desc"
        stmt = select(model)
        for field, value in (filters or {}).items():
            stmt = stmt.where(self._column(model, field) == value)

        keys = [model.id]
        if order_by and order_by != "id":
            keys.insert(0, self._column(model, order_by))

        if cursor is not None:
            stmt = stmt.where(self._after(keys, [cursor[k.key] for k in keys], descending))

        stmt = stmt.order_by(*[k.desc() if descending else k.asc() for k in keys])
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            return [row.to_dict() for row in self.session.execute(stmt).scalars()]
        except SQLAlchemyError as exc:
            self.session.rollback()
            log.exception("Store query on %s failed", collection)
            raise StoreUnavailable() from exc

    @staticmethod
    def _after(keys, values, descending):
        # (a, b) > (x, y)  ==  a > x OR (a == x AND b > y)
        head, head_value = keys[0], values[0]
        beyond = head < head_value if descending else head > head_value
        if len(keys) == 1:
            return beyond
        return or_(beyond, and_(head == head_value, MetadataStore._after(keys[1:], values[1:], descending)))

    def increment(self, collection, record_id, field, delta=1):
        model = self._model(collection)
        column = self._column(model, field)
        values = {field: column + delta}
        if "updated_at" in model.__table__.columns:
            values["updated_at"] = self.clock()
        stmt = (
            update(model)
            .where(model.id == record_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreUnavailable() from exc
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFound(f"No {collection} record {record_id}")
        self._commit(f"increment of {collection}.{field}")
        # rows loaded before the UPDATE must not serve the old counter
        self.session.expire_all()
