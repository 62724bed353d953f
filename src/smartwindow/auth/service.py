"""Credential Store business logic (users)."""

from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from smartwindow.auth.models import User
from smartwindow.auth.passwords import hash_password, needs_rehash, verify_password

logger = logging.getLogger(__name__)


class DuplicateUserError(ValueError):
    """Username or email already registered."""


async def find_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).filter(User.username == username))
    return result.scalars().first()


async def find_user_by_id(db: AsyncSession, user_id: str) -> User | None:
    result = await db.execute(select(User).filter(User.id == user_id))
    return result.scalars().first()


async def create_user(db: AsyncSession, username: str, email: str, password: str) -> User:
    """Insert a new user. Raises :class:`DuplicateUserError` on a taken username/email."""
    result = await db.execute(
        select(User).filter(or_(User.username == username, User.email == email))
    )
    if result.scalars().first() is not None:
        raise DuplicateUserError("Username or email already registered")
    user = User(username=username, email=email, password_hash=hash_password(password))
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration.
        await db.rollback()
        raise DuplicateUserError("Username or email already registered") from None
    await db.refresh(user)
    logger.info("registered user %s", user.id)
    return user


async def authenticate_user(db: AsyncSession, username: str, password: str) -> User | None:
    user = await find_user_by_username(db, username)
    if not verify_password(password, user.password_hash if user else None):
        return None
    if user is None:
        return None
    if needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        await db.commit()
    return user
