"""
User repository — registration, lookups, profile updates and credential
checks.

Users are never cached: every read goes to the store and attaches the
user's followers best-effort (follower data is supplementary, so a
failure there leaves the collection empty rather than failing the read).
"""
import logging
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.errors import (
    DuplicateEmailError,
    DuplicateError,
    DuplicateUsernameError,
    NotFoundError,
    UnauthorizedError,
)
from conduit.models import User
from conduit.repositories.hydration import hydrate_user_best_effort
from conduit.repositories.predicates import build_user_predicate, paginate
from conduit.schemas import UserCreate, UserFilter, UserPatch
from conduit.transaction import TransactionCoordinator

logger = logging.getLogger(__name__)

# Checks *password* against a stored hash.  Hashing itself lives outside
# the data-access layer.
PasswordVerifier = Callable[[str, str], bool]

# Markers identifying each unique constraint in driver error text:
# the constraint name (PostgreSQL) or the table.column pair (SQLite).
_UNIQUE_VIOLATIONS: tuple[tuple[tuple[str, ...], type[DuplicateError]], ...] = (
    (("uq_users_email", "users.email"), DuplicateEmailError),
    (("uq_users_username", "users.username"), DuplicateUsernameError),
)


def _duplicate_error(exc: IntegrityError) -> DuplicateError | None:
    message = str(exc.orig)
    for markers, error_cls in _UNIQUE_VIOLATIONS:
        if any(marker in message for marker in markers):
            return error_cls()
    return None


# ---------------------------------------------------------------------------
# Session-level helpers
# ---------------------------------------------------------------------------

async def create_user(db: AsyncSession, data: UserCreate) -> User:
    user = User(
        email=data.email,
        username=data.username,
        bio=data.bio,
        image=data.image,
        password_hash=data.password_hash,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        duplicate = _duplicate_error(exc)
        if duplicate is None:
            raise
        raise duplicate from exc
    await db.refresh(user, ["created_at", "updated_at"])
    return user


async def find_users(db: AsyncSession, filter_: UserFilter) -> list[User]:
    q = build_user_predicate(filter_).apply(select(User)).order_by(User.id.asc())
    q = paginate(q, filter_.limit, filter_.offset)
    users = list((await db.execute(q)).scalars().all())
    for user in users:
        await hydrate_user_best_effort(db, user)
    return users


async def find_one_user(db: AsyncSession, filter_: UserFilter) -> User:
    users = await find_users(db, filter_)
    if not users:
        raise NotFoundError("user not found")
    return users[0]


# Columns rewritten by every update, changed or not.
_WRITABLE_COLUMNS = ("username", "email", "bio", "image", "password_hash")


def patched_columns(user: User, patch: UserPatch) -> dict[str, Any]:
    """Current column values of *user* overlaid with the fields set on *patch*."""
    current = {name: getattr(user, name) for name in _WRITABLE_COLUMNS}
    return {**current, **patch.model_dump(exclude_none=True)}


async def update_user(db: AsyncSession, user: User, patch: UserPatch) -> dict[str, Any]:
    """
    Write every column of *user*, with *patch* applied, in one statement.

    *user* itself is left untouched; the written values are returned
    together with the refreshed ``updated_at`` so the caller can apply
    them once the transaction has committed.
    """
    values = patched_columns(user, patch)
    q = (
        update(User)
        .where(User.id == user.id)
        .values(**values, updated_at=func.now())
        .returning(User.updated_at)
        .execution_options(synchronize_session=False)
    )
    values["updated_at"] = (await db.execute(q)).scalar_one()
    return values


# ---------------------------------------------------------------------------
# Public repository
# ---------------------------------------------------------------------------

class UserRepository:
    def __init__(self, coordinator: TransactionCoordinator, verify_password: PasswordVerifier) -> None:
        self._tx = coordinator
        self._verify_password = verify_password

    async def create(self, data: UserCreate) -> User:
        """
        Register a new user.

        Raises DuplicateEmailError / DuplicateUsernameError when either
        unique field is taken, so callers can report the offending field.
        """
        async with self._tx.transaction("users.create") as db:
            user = await create_user(db, data)
        logger.info("created user id=%s", user.id)
        return user

    async def find_one(self, filter_: UserFilter) -> User:
        async with self._tx.transaction("users.find_one") as db:
            return await find_one_user(db, filter_)

    async def find_many(self, filter_: UserFilter | None = None) -> list[User]:
        async with self._tx.transaction("users.find_many") as db:
            return await find_users(db, filter_ or UserFilter())

    async def find_by_email(self, email: str) -> User:
        return await self.find_one(UserFilter(email=email))

    async def authenticate(self, email: str, password: str) -> User:
        """
        Return the user for *email* when *password* matches.

        Unknown emails and wrong passwords raise the same
        UnauthorizedError so the response cannot be used to discover which
        accounts exist.
        """
        try:
            user = await self.find_by_email(email)
        except NotFoundError:
            raise UnauthorizedError() from None
        if not self._verify_password(password, user.password_hash):
            raise UnauthorizedError()
        return user

    async def update(self, user: User, patch: UserPatch) -> datetime:
        # Store failures (including a taken email/username) surface as
        # InternalError via the coordinator.
        async with self._tx.transaction("users.update") as db:
            values = await update_user(db, user, patch)
        # Only a committed write reaches the caller's record.
        for name, value in values.items():
            setattr(user, name, value)
        return user.updated_at
