"""Write guard that turns database failures into a typed StorageError."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lifeline.core.exceptions import StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def storage_guard(db: AsyncSession, operation: str, *, commit: bool = True) -> AsyncIterator[None]:
    """Run a unit of work and commit it, or roll back and raise StorageError.

    The driver message is logged but never placed in the error detail.
    """
    try:
        yield
        if commit:
            await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Storage failure during %s: %s", operation, exc.__class__.__name__)
        raise StorageError(operation) from exc
