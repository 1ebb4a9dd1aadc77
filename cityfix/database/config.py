from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cityfix.errors import StoreUnavailable


# Base class for models
class Base(DeclarativeBase):
    pass


class Database:
    """
    Owns the async engine and session factory for one process.

    connect() is called once at startup and dispose() once at shutdown.
    Asking for a session outside that window raises StoreUnavailable.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    async def connect(self) -> None:
        self.engine = create_async_engine(self.url, echo=self.echo, future=True)
        self._sessionmaker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        # Create tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self._sessionmaker = None

    @property
    def connected(self) -> bool:
        return self._sessionmaker is not None

    def session(self) -> AsyncSession:
        if self._sessionmaker is None:
            raise StoreUnavailable("Database connection is not initialized")
        return self._sessionmaker()
