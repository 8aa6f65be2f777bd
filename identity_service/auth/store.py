"""
Credential store.

Thin repository over the ``users`` table. Absence is reported as ``None``;
any failure talking to the database is raised as StoreUnavailableException so
callers never confuse an outage with bad credentials.
"""
from contextlib import asynccontextmanager
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from identity_service.base_microservice import logger
from identity_service.auth.exceptions import (
    EmailAlreadyExistsException, StoreUnavailableException
)
from identity_service.auth.models import User


@asynccontextmanager
async def _store_call(operation: str):
    try:
        yield
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"ERROR: {e.__class__.__name__} | Context: store.{operation}")
        raise StoreUnavailableException() from e


class CredentialStore:
    """
    Persistence operations for user records.
    """
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_email(self, email: str) -> Optional[User]:
        async with _store_call("get_by_email"):
            result = await self.db.execute(
                select(User).where(User.email == email)
            )
            return result.scalar_one_or_none()

    async def get_by_id(self, user_id: int) -> Optional[User]:
        async with _store_call("get_by_id"):
            result = await self.db.execute(
                select(User).where(User.id == user_id)
            )
            return result.scalar_one_or_none()

    async def email_exists(self, email: str) -> bool:
        return await self.get_by_email(email) is not None

    async def count(self) -> int:
        async with _store_call("count"):
            result = await self.db.execute(select(func.count(User.id)))
            return result.scalar_one()

    async def insert(self, user: User) -> User:
        """
        Persist a new user and return it with its assigned id.

        Raises:
            EmailAlreadyExistsException: The unique email constraint was violated
            StoreUnavailableException: Any other database failure
        """
        async with _store_call("insert"):
            try:
                self.db.add(user)
                # Flush assigns the id and defaults; nothing is read back after commit
                await self.db.flush()
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                raise EmailAlreadyExistsException()
            return user
