"""Issue persistence on top of the async SQLAlchemy session factory."""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from cityfix.database import Database, models
from cityfix.errors import StoreUnavailable
from cityfix.schemas import Issue

logger = logging.getLogger(__name__)

_ID_FIELDS = {"id", "_id", "pk"}


class IssueStore:
    """Minimal CRUD over issue records, keyed by a store-assigned UUID."""

    def __init__(self, database: Database):
        self.database = database

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = self.database.session()
        try:
            yield session
        except (OperationalError, InterfaceError, OSError) as e:
            await self._unavailable(session, e)
        except DBAPIError as e:
            # asyncpg reports a dropped connection as a plain DBAPIError
            if not e.connection_invalidated:
                raise
            await self._unavailable(session, e)
        finally:
            await session.close()

    @staticmethod
    async def _unavailable(session: AsyncSession, error: Exception) -> None:
        try:
            await session.rollback()
        except (DBAPIError, OSError):
            logger.debug("Rollback after connection loss failed", exc_info=True)
        logger.error(f"Database operation failed: {error}")
        raise StoreUnavailable(f"Database unavailable: {error.__class__.__name__}") from error

    async def insert(self, fields: dict[str, Any]) -> str:
        """Persist a new issue and return its freshly assigned id."""
        values = {k: v for k, v in fields.items() if k.lower() not in _ID_FIELDS}
        if values.get("created_at") is None:
            values["created_at"] = datetime.now(timezone.utc)

        issue_id = str(uuid.uuid4())
        async with self._session() as session:
            session.add(models.Issue(id=issue_id, **values))
            await session.commit()

        logger.info("Issue stored", extra={"issue_id": issue_id})
        return issue_id

    async def find_by_id(self, issue_id: str) -> Optional[Issue]:
        async with self._session() as session:
            result = await session.execute(select(models.Issue).where(models.Issue.id == issue_id))
            row = result.scalars().first()
            return Issue.model_validate(row) if row is not None else None

    async def find_all(self) -> list[Issue]:
        async with self._session() as session:
            result = await session.execute(select(models.Issue).order_by(models.Issue.pk))
            return [Issue.model_validate(row) for row in result.scalars().all()]

    async def update_fields(self, issue_id: str, fields: dict[str, Any]) -> bool:
        """Merge fields into an existing record.

        An unknown id is not an error here; the return value only says whether
        a row was touched.
        """
        values = {k: v for k, v in fields.items() if k.lower() not in _ID_FIELDS}
        if not values:
            return False

        async with self._session() as session:
            result = await session.execute(
                update(models.Issue).where(models.Issue.id == issue_id).values(**values)
            )
            await session.commit()
            return result.rowcount > 0
