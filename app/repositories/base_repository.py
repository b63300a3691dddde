from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Generic, List, Optional, Sequence, Tuple, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, and_, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository for lifecycle-tracked records.

    Records are never hard-deleted, so there is no generic delete; subclasses
    expose the narrow transitions their model allows and build them on
    ``update`` or ``transaction``.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    @asynccontextmanager
    async def transaction(self, description: str) -> AsyncIterator[AsyncSession]:
        """Commit everything done inside the block, or roll all of it back.

        Args:
            description: What is being written, used in the error log
        """
        try:
            yield self.session
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            self.logger.error(
                f"Error {description} ({self.model.__name__}): {str(e)}",
                exc_info=True
            )
            raise

    async def first(self, query: Select) -> Optional[Any]:
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def all(self, query: Select) -> List[Any]:
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_where(self, *conditions) -> int:
        query = select(func.count()).select_from(self.model)
        if conditions:
            query = query.where(and_(*conditions))
        result = await self.session.execute(query)
        return result.scalar_one()

    async def page(
        self,
        query: Select,
        conditions: Sequence[Any],
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ModelType], int]:
        """One page of ``query`` filtered by ``conditions``, plus the total count."""
        items = await self.all(query.where(and_(*conditions)).offset(skip).limit(limit))
        return items, await self.count_where(*conditions)

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        return await self.first(select(self.model).where(self.model.id == id))

    async def create(self, **kwargs) -> ModelType:
        """Create and commit a new record."""
        instance = self.model(**kwargs)
        async with self.transaction("creating record"):
            self.session.add(instance)
        return instance

    async def update(self, instance: ModelType, **kwargs) -> ModelType:
        """Apply field changes to a loaded record and commit them.

        Each call is one persisted transition, so callers observe the new
        state as soon as this returns.
        """
        # Checked on the class: reading an expired instance would hit the database
        async with self.transaction(f"updating {self._identity(instance)}"):
            for key, value in kwargs.items():
                if not hasattr(self.model, key):
                    raise AttributeError(f"{self.model.__name__} has no field {key!r}")
                setattr(instance, key, value)

            if hasattr(self.model, "updated_at"):
                instance.updated_at = datetime.now(timezone.utc)
        return instance

    async def reload(self, *instances: ModelType) -> None:
        """Load current column values into records a rollback has expired."""
        for instance in instances:
            await self.session.refresh(instance)

    @staticmethod
    def _identity(instance: Any) -> Any:
        state = inspect(instance, raiseerr=False)
        if state is None or state.identity is None:
            return None
        return state.identity[0] if len(state.identity) == 1 else state.identity
