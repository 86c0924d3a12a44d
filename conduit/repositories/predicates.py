"""
Predicate builder — translates an optional-field filter into an ordered
list of parameterized WHERE clauses.

Each filter type has a declared field table that is walked in a fixed
order (id, foreign keys, unique/lookup columns, then derived subquery
fields).  Only fields that are not None contribute a clause, and clause
*i* binds argument *i* through a parameter named ``p<i>``; compiled for a
positional dialect such as asyncpg this renders ``$1, $2, ...`` in the
same stable order.

Derived fields (tag, author username, favoriter) are expressed as
``IN (subquery)`` or ``= (scalar subquery)`` rather than joins, so every
clause stands alone and the result does not depend on filter order.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from sqlalchemy import Select, bindparam, select
from sqlalchemy.sql.elements import BindParameter, ColumnElement

from conduit.models import Article, Tag, User, article_tags, favorites
from conduit.schemas import ArticleFilter, TagFilter, UserFilter

ClauseFactory = Callable[[BindParameter], ColumnElement[bool]]


@dataclass
class Predicate:
    clauses: list[ColumnElement[bool]] = field(default_factory=list)
    arguments: list[Any] = field(default_factory=list)

    def add(self, factory: ClauseFactory, value: Any) -> None:
        param = bindparam(f"p{len(self.arguments) + 1}", value)
        self.clauses.append(factory(param))
        self.arguments.append(value)

    def apply(self, stmt: Select) -> Select:
        """Attach the clauses to *stmt*; no clauses means no WHERE at all."""
        if not self.clauses:
            return stmt
        return stmt.where(*self.clauses)

    def __bool__(self) -> bool:
        return bool(self.clauses)


# ---------------------------------------------------------------------------
# Derived (subquery) clauses
# ---------------------------------------------------------------------------

def _tagged(param: BindParameter) -> ColumnElement[bool]:
    tag_ids = select(Tag.id).where(Tag.name == param)
    return Article.id.in_(
        select(article_tags.c.article_id).where(article_tags.c.tag_id.in_(tag_ids))
    )


def _authored_by_username(param: BindParameter) -> ColumnElement[bool]:
    return Article.author_id == select(User.id).where(User.username == param).scalar_subquery()


def _favorited_by_username(param: BindParameter) -> ColumnElement[bool]:
    user_id = select(User.id).where(User.username == param).scalar_subquery()
    return Article.id.in_(
        select(favorites.c.article_id).where(favorites.c.user_id == user_id)
    )


# ---------------------------------------------------------------------------
# Field tables — order is significant
# ---------------------------------------------------------------------------

ARTICLE_FIELDS: Sequence[tuple[str, ClauseFactory]] = (
    ("id", lambda p: Article.id == p),
    ("author_id", lambda p: Article.author_id == p),
    ("slug", lambda p: Article.slug == p),
    ("title", lambda p: Article.title == p),
    ("description", lambda p: Article.description == p),
    ("tag", _tagged),
    ("author_username", _authored_by_username),
    ("favorited_by", _favorited_by_username),
)

USER_FIELDS: Sequence[tuple[str, ClauseFactory]] = (
    ("id", lambda p: User.id == p),
    ("email", lambda p: User.email == p),
    ("username", lambda p: User.username == p),
)

TAG_FIELDS: Sequence[tuple[str, ClauseFactory]] = (
    ("name", lambda p: Tag.name == p),
)


def _build(fields: Sequence[tuple[str, ClauseFactory]], filter_) -> Predicate:
    predicate = Predicate()
    for name, factory in fields:
        value = getattr(filter_, name)
        if value is not None:
            predicate.add(factory, value)
    return predicate


def build_article_predicate(filter_: ArticleFilter) -> Predicate:
    return _build(ARTICLE_FIELDS, filter_)


def build_user_predicate(filter_: UserFilter) -> Predicate:
    return _build(USER_FIELDS, filter_)


def build_tag_predicate(filter_: TagFilter) -> Predicate:
    return _build(TAG_FIELDS, filter_)


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

def _non_negative(value: int | None) -> int:
    return max(int(value or 0), 0)


def paginate(stmt: Select, limit: int | None, offset: int | None) -> Select:
    """
    Apply LIMIT/OFFSET after ordering.

    Both values are clamped to non-negative integers.  A limit of 0 means
    "no limit"; choosing a sane default page size is the caller's job.
    """
    limit, offset = _non_negative(limit), _non_negative(offset)
    if limit:
        stmt = stmt.limit(limit)
    if offset:
        stmt = stmt.offset(offset)
    return stmt
