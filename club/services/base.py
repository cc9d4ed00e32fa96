"""
Base service class for the club backend.

Services are read-side projections (leaderboard, categories, profiles) that
are recomputed from the member store on every call. They share one session
scope: reads only, never committed, with storage failures reported as
DatabaseError like everywhere else in the package.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from club.utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)


class BaseService:
    """Base class for read-only services over the shared session factory."""

    def __init__(self, session_factory):
        """
        Initialize base service with session factory.

        Args:
            session_factory: Async session factory from Database class
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def read_session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a read-only scope for one projection.

        The session is closed without committing, so nothing a projection
        touches is ever written. Loaded objects stay readable after exit.

        Raises:
            DatabaseError: If the underlying query fails
        """
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            logger.error(f"{type(self).__name__}.{operation} failed: {e}")
            raise DatabaseError(operation, str(e))
        finally:
            await session.close()
