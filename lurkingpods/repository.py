"""
Repositories for CRUD operations on the LurkingPods tables.

Every call opens its own session and commits before returning, so each
state change is durable as soon as the call completes.
"""

from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from .database import SessionFactory, SessionLocal, session_scope
from .errors import ConflictError, EntityNotFound
from .models import (
    Category,
    ContentGenerationJob,
    Notification,
    Podcast,
    Subscription,
    User,
)
from .utils.logger import setup_logger

logger = setup_logger(__name__)

ModelT = TypeVar("ModelT")


def _column_values(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in values.items()}


class Repository(Generic[ModelT]):
    """Generic repository keyed by primary key ``id``."""

    entity_name = "Record"

    def __init__(self, model: Type[ModelT], session_factory: SessionFactory = SessionLocal):
        self.model = model
        self.session_factory = session_factory

    def create(self, **values) -> ModelT:
        """Insert a record and return it with defaults populated."""
        record = self.model(**_column_values(values))
        try:
            with session_scope(self.session_factory) as db:
                db.add(record)
                db.flush()
                db.refresh(record)
        except IntegrityError as e:
            logger.warning(f"Failed to create {self.entity_name}: {e.orig}")
            raise ConflictError(f"Failed to create {self.entity_name}: {e.orig}") from e
        return record

    def get(self, record_id: str) -> Optional[ModelT]:
        with session_scope(self.session_factory) as db:
            return db.get(self.model, record_id)

    def get_or_raise(self, record_id: str) -> ModelT:
        record = self.get(record_id)
        if record is None:
            raise EntityNotFound(self.entity_name, record_id)
        return record

    def update(self, record_id: str, **values) -> ModelT:
        """Update fields of a record; raises ``EntityNotFound`` if it is missing."""
        try:
            with session_scope(self.session_factory) as db:
                record = db.get(self.model, record_id)
                if record is None:
                    raise EntityNotFound(self.entity_name, record_id)
                for key, value in _column_values(values).items():
                    setattr(record, key, value)
                db.flush()
                db.refresh(record)
        except IntegrityError as e:
            logger.warning(f"Failed to update {self.entity_name} {record_id}: {e.orig}")
            raise ConflictError(f"Failed to update {self.entity_name}: {e.orig}") from e
        return record

    def update_if(self, record_id: str, expected: Dict[str, Any], **values) -> bool:
        """
        Compare-and-swap update.

        Args:
            record_id: Primary key
            expected: Column values the stored row must still have
            **values: Columns to write

        Returns:
            True if the row matched and was updated, False otherwise
        """
        try:
            with session_scope(self.session_factory) as db:
                result = (
                    db.query(self.model)
                    .filter_by(id=record_id, **_column_values(expected))
                    .update(_column_values(values), synchronize_session=False)
                )
        except IntegrityError as e:
            logger.warning(f"Failed to update {self.entity_name} {record_id}: {e.orig}")
            raise ConflictError(f"Failed to update {self.entity_name}: {e.orig}") from e
        return result == 1

    def delete(self, record_id: str) -> int:
        with session_scope(self.session_factory) as db:
            return db.query(self.model).filter_by(id=record_id).delete(synchronize_session=False)

    def query(self, *criteria, order_by=None, limit: Optional[int] = None,
              offset: int = 0, **filters) -> List[ModelT]:
        """
        List records matching SQLAlchemy ``criteria`` and equality ``filters``.

        ``order_by`` is a column name, prefixed with ``-`` for descending order.
        """
        with session_scope(self.session_factory) as db:
            query = db.query(self.model).filter(*criteria).filter_by(**_column_values(filters))
            if order_by:
                column = getattr(self.model, order_by.lstrip("-"))
                query = query.order_by(column.desc() if order_by.startswith("-") else column.asc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def first(self, *criteria, order_by=None, **filters) -> Optional[ModelT]:
        records = self.query(*criteria, order_by=order_by, limit=1, **filters)
        return records[0] if records else None

    def count(self, *criteria, **filters) -> int:
        with session_scope(self.session_factory) as db:
            return (
                db.query(func.count(self.model.id))
                .filter(*criteria)
                .filter_by(**_column_values(filters))
                .scalar()
            )

    def delete_where(self, *criteria, **filters) -> List[ModelT]:
        """Delete matching records and return them."""
        with session_scope(self.session_factory) as db:
            records = db.query(self.model).filter(*criteria).filter_by(**_column_values(filters)).all()
            for record in records:
                db.delete(record)
        return records


class CategoryRepository(Repository[Category]):
    entity_name = "Category"

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        super().__init__(Category, session_factory)


class UserRepository(Repository[User]):
    entity_name = "User"

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        super().__init__(User, session_factory)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.first(email=email)


class SubscriptionRepository(Repository[Subscription]):
    entity_name = "Subscription"

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        super().__init__(Subscription, session_factory)

    def latest_for_user(self, user_id: str) -> Optional[Subscription]:
        return self.first(order_by="-created_at", user_id=user_id)


class PodcastRepository(Repository[Podcast]):
    entity_name = "Podcast"

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        super().__init__(Podcast, session_factory)

    def increment_play_count(self, podcast_id: str) -> Podcast:
        """Atomically add one play and return the updated podcast."""
        with session_scope(self.session_factory) as db:
            updated = (
                db.query(Podcast)
                .filter_by(id=podcast_id)
                .update({Podcast.play_count: Podcast.play_count + 1}, synchronize_session=False)
            )
            if not updated:
                raise EntityNotFound(self.entity_name, podcast_id)
        return self.get_or_raise(podcast_id)


class JobRepository(Repository[ContentGenerationJob]):
    entity_name = "ContentGenerationJob"

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        super().__init__(ContentGenerationJob, session_factory)


class NotificationRepository(Repository[Notification]):
    entity_name = "Notification"

    def __init__(self, session_factory: SessionFactory = SessionLocal):
        super().__init__(Notification, session_factory)
