"""
Database Service Base
=====================
Session lifecycle shared by the database-backed services.
"""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import create_session_factory
from exceptions import ValidationError


def coerce_uuid(value: Any, field: str = "id") -> UUID:
    """Accept UUIDs and their string forms; anything else is a ValidationError."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field}", field=field, value=value) from e


class DatabaseService:
    """
    Async context manager owning one session and transaction.

    Usage:
        async with DocumentService() as service:
            doc = await service.get_document(doc_id)

    Or with an existing session:
        service = DocumentService.from_session(session)

    The transaction is committed on a clean exit and rolled back when the
    block raises. Services built with `from_session` leave the session to
    their caller.
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Args:
            database_url: SQLAlchemy async database URL.
                          If None, uses settings.database_url.
        """
        self._database_url = database_url or get_settings().database_url
        self._engine = None
        self._session: Optional[AsyncSession] = None
        self._owns_session = True

    @classmethod
    def from_session(cls, session: AsyncSession):
        """Create a service participating in an external transaction."""
        instance = cls.__new__(cls)
        instance._database_url = None
        instance._engine = None
        instance._session = session
        instance._owns_session = False
        return instance

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError(f"{type(self).__name__} used outside of 'async with'")
        return self._session

    async def __aenter__(self):
        if self._owns_session:
            self._engine, session_factory = create_session_factory(self._database_url)
            self._session = session_factory()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owns_session and self._session:
            try:
                if exc_type is not None:
                    await self._session.rollback()
                else:
                    await self._session.commit()
            finally:
                await self._session.close()
                self._session = None

        if self._engine:
            await self._engine.dispose()
            self._engine = None
