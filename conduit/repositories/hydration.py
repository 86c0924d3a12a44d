"""
Association hydrator — attaches related collections to loaded entities.

Every function runs inside the caller's transaction so the primary row
and its associations come from one consistent snapshot.  Collections are
attached with ``set_committed_value``: the ORM treats them as loaded
state, so nothing on the read path is ever flushed back to the join
tables.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from conduit.errors import NotFoundError
from conduit.models import Article, Tag, User, article_tags, favorites, followings

logger = logging.getLogger(__name__)


async def find_article_tags(db: AsyncSession, article_id: int) -> list[Tag]:
    q = (
        select(Tag)
        .where(Tag.id.in_(select(article_tags.c.tag_id).where(article_tags.c.article_id == article_id)))
        .order_by(Tag.id.asc())
    )
    return list((await db.execute(q)).scalars().all())


async def find_favorited_by(db: AsyncSession, article_id: int) -> list[User]:
    q = (
        select(User)
        .where(User.id.in_(select(favorites.c.user_id).where(favorites.c.article_id == article_id)))
        .order_by(User.id.asc())
    )
    return list((await db.execute(q)).scalars().all())


async def find_followers(db: AsyncSession, user_id: int) -> list[User]:
    q = (
        select(User)
        .where(User.id.in_(select(followings.c.follower_id).where(followings.c.following_id == user_id)))
        .order_by(User.id.asc())
    )
    return list((await db.execute(q)).scalars().all())


async def hydrate_user(db: AsyncSession, user: User) -> User:
    set_committed_value(user, "followers", await find_followers(db, user.id))
    return user


async def hydrate_user_best_effort(db: AsyncSession, user: User) -> User:
    """
    Attach followers, tolerating store errors.

    Follower data is supplementary: a failure is logged and leaves the
    collection empty.  The lookup runs in a SAVEPOINT so a failed
    statement does not poison the enclosing transaction.
    """
    try:
        async with db.begin_nested():
            followers = await find_followers(db, user.id)
    except SQLAlchemyError:
        logger.warning("could not load followers for user id=%s", user.id, exc_info=True)
        followers = []
    set_committed_value(user, "followers", followers)
    return user


async def hydrate_article(db: AsyncSession, article: Article) -> Article:
    """
    Attach tags (by tag id), the author and the favoriters of *article*.

    Raises NotFoundError when the author row is missing: author_id is set
    at creation and never cleared, so this is a data-integrity failure.
    """
    set_committed_value(article, "tags", await find_article_tags(db, article.id))

    author = await db.get(User, article.author_id)
    if author is None:
        raise NotFoundError(f"author of article {article.id} not found")
    await hydrate_user_best_effort(db, author)
    set_committed_value(article, "author", author)

    set_committed_value(article, "favorited_by", await find_favorited_by(db, article.id))
    return article


async def hydrate_articles(db: AsyncSession, articles: list[Article]) -> list[Article]:
    # All or nothing: the first failure aborts the whole batch.
    for article in articles:
        await hydrate_article(db, article)
    return articles
