"""
Base CRUD operations for SQLAlchemy models.

Generic create/read/update/delete keyed by the string primary key every
chatsync table uses (session ids and client-generated message ids), plus
scoped lookups so owner and session checks stay in the query.

Dependencies: sqlalchemy
System role: Foundation for all database CRUD operations
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatsync.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseCRUD(Generic[ModelT]):
    """
    Generic base class for CRUD operations.

    Methods flush but never commit; the caller owns the transaction, so a
    service can group several writes (message insert + session summary) into
    one commit or one rollback.

    Type Parameters:
        ModelT: SQLAlchemy model class inheriting from Base

    Attributes:
        model: The SQLAlchemy model class to operate on
    """

    def __init__(self, model: type[ModelT]) -> None:
        """
        Initialize CRUD with target model.

        Args:
            model: SQLAlchemy model class for database operations
        """
        self.model = model

    def _scope(self, scope: dict[str, Any]) -> list:
        return [getattr(self.model, column) == value for column, value in scope.items()]

    async def create(self, session: AsyncSession, **kwargs) -> ModelT:
        """
        Insert a new row.

        Args:
            session: Async database session
            **kwargs: Column values, including the primary key

        Returns:
            Created model instance with server defaults loaded
        """
        instance = self.model(**kwargs)
        session.add(instance)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def get_by_id(self, session: AsyncSession, id: str) -> ModelT | None:
        return await self.get_scoped(session, id)

    async def get_scoped(self, session: AsyncSession, id: str, **scope) -> ModelT | None:
        """
        Retrieve a row by primary key only if every scope column matches.

        Args:
            session: Async database session
            id: Primary key
            **scope: Column equality filters, e.g. owner_id="u1"

        Returns:
            Model instance, None if missing or out of scope
        """
        stmt = select(self.model).where(self.model.id == id, *self._scope(scope))
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_by_id(self, session: AsyncSession, id: str, **kwargs) -> ModelT | None:
        """
        Set columns on a row through the ORM so onupdate hooks run.

        Args:
            session: Async database session
            id: Primary key
            **kwargs: Columns to set

        Returns:
            Updated model instance, None if not found
        """
        instance = await self.get_by_id(session, id)
        if instance is None:
            return None
        for key, value in kwargs.items():
            setattr(instance, key, value)
        await session.flush()
        await session.refresh(instance)
        return instance

    async def delete_by_id(self, session: AsyncSession, id: str) -> bool:
        """Delete one row. Returns True if it existed."""
        result = await session.execute(delete(self.model).where(self.model.id == id))
        return result.rowcount > 0

    async def delete_where(self, session: AsyncSession, **scope) -> int:
        """
        Delete every row matching the scope columns.

        Args:
            session: Async database session
            **scope: Column equality filters (at least one)

        Returns:
            int: Number of rows deleted
        """
        if not scope:
            raise ValueError("delete_where requires at least one filter")
        result = await session.execute(delete(self.model).where(*self._scope(scope)))
        return result.rowcount

    async def exists(self, session: AsyncSession, id: str) -> bool:
        stmt = select(self.model.id).where(self.model.id == id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None
