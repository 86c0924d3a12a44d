"""
Transaction coordinator — one begin / commit-or-rollback scope per public
repository operation.

The outermost ``transaction()`` call in an execution context checks a
session out of the factory, begins, and commits when the body returns.
Any exception (including ``asyncio.CancelledError``) rolls the
transaction back before it propagates.  Nested calls on the same
coordinator made while a scope is active join that session instead of
opening a second transaction, so a multi-step write is all-or-nothing.
A different coordinator nested inside always opens its own transaction.

Store failures are logged with the operation name only (the engine is
built with ``hide_parameters=True``) and re-raised as ``InternalError``;
errors that are already part of the taxonomy pass through untouched.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import AsyncIterator, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conduit.errors import ConduitError, InternalError
from conduit.instrumentation import current_query_count, reset_query_count

logger = logging.getLogger(__name__)

# Sessions of the transactions open in the current context, keyed by the
# coordinator that opened them.  A nested scope only joins a session its
# own coordinator opened.
_active_sessions: ContextVar[Mapping["TransactionCoordinator", AsyncSession]] = ContextVar(
    "active_sessions", default={}
)


class TransactionCoordinator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from conduit.database import async_session

            session_factory = async_session
        self._session_factory = session_factory

    @property
    def in_transaction(self) -> bool:
        return self in _active_sessions.get()

    @asynccontextmanager
    async def transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        active = _active_sessions.get().get(self)
        if active is not None:
            yield active
            return

        async with self._session_factory() as session:
            token = _active_sessions.set({**_active_sessions.get(), self: session})
            reset_query_count()
            try:
                async with session.begin():
                    yield session
            except ConduitError:
                raise
            except asyncio.CancelledError:
                logger.info("%s cancelled; transaction rolled back", operation)
                raise
            except (SQLAlchemyError, OSError) as exc:
                logger.exception("%s failed; transaction rolled back", operation)
                raise InternalError(operation) from exc
            finally:
                _active_sessions.reset(token)
            logger.debug("%s committed (%d statements)", operation, current_query_count())
