"""
Article repository — creation, filtered listing and the follow feed.

Design notes
------------
- ``create`` inserts the article row first, then resolves every tag name
  and inserts its ``article_tags`` link in input order.  All of it runs
  in one coordinator transaction, so an article is never left partially
  tagged: any failure rolls back the article row as well.
- Reads order strictly by ``created_at`` descending (id descending breaks
  ties between rows stamped in the same instant) and hydrate every row
  before returning.
- Session-level helpers take the ``AsyncSession`` as their first argument
  so they can be composed inside a caller's transaction.
"""
import logging
import re

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.errors import NotFoundError
from conduit.models import Article, Tag, User, article_tags, followings
from conduit.repositories.hydration import hydrate_article, hydrate_articles
from conduit.repositories.predicates import build_article_predicate, paginate
from conduit.repositories.tags import resolve_tag
from conduit.schemas import ArticleCreate, ArticleFilter
from conduit.transaction import TransactionCoordinator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _newest_first(q):
    return q.order_by(Article.created_at.desc(), Article.id.desc())


# ---------------------------------------------------------------------------
# Session-level helpers
# ---------------------------------------------------------------------------

async def link_tag(db: AsyncSession, article: Article, tag: Tag) -> None:
    await db.execute(insert(article_tags).values(article_id=article.id, tag_id=tag.id))


async def set_article_tags(db: AsyncSession, article: Article, names: list[str]) -> None:
    for name in names:
        resolution = await resolve_tag(db, name)
        await link_tag(db, article, resolution.tag)


async def create_article(db: AsyncSession, data: ArticleCreate) -> Article:
    article = Article(
        title=data.title,
        body=data.body,
        description=data.description,
        slug=data.slug or slugify(data.title),
        author_id=data.author_id,
    )
    db.add(article)
    await db.flush()
    # Pick up the server-generated timestamps.
    await db.refresh(article, ["created_at", "updated_at"])

    await set_article_tags(db, article, data.tags)
    return await hydrate_article(db, article)


async def find_articles(db: AsyncSession, filter_: ArticleFilter) -> list[Article]:
    q = _newest_first(build_article_predicate(filter_).apply(select(Article)))
    q = paginate(q, filter_.limit, filter_.offset)
    articles = list((await db.execute(q)).scalars().all())
    return await hydrate_articles(db, articles)


async def find_feed_articles(db: AsyncSession, user: User, filter_: ArticleFilter) -> list[Article]:
    followed = select(followings.c.following_id).where(followings.c.follower_id == user.id)
    q = _newest_first(select(Article).where(Article.author_id.in_(followed)))
    q = paginate(q, filter_.limit, filter_.offset)
    articles = list((await db.execute(q)).scalars().all())
    return await hydrate_articles(db, articles)


# ---------------------------------------------------------------------------
# Public repository
# ---------------------------------------------------------------------------

class ArticleRepository:
    def __init__(self, coordinator: TransactionCoordinator) -> None:
        self._tx = coordinator

    async def create(self, data: ArticleCreate) -> Article:
        """Insert an article with its tags and return it hydrated."""
        async with self._tx.transaction("articles.create") as db:
            article = await create_article(db, data)
        logger.info("created article id=%s with %d tag(s)", article.id, len(article.tags))
        return article

    async def find(self, filter_: ArticleFilter | None = None) -> list[Article]:
        async with self._tx.transaction("articles.find") as db:
            return await find_articles(db, filter_ or ArticleFilter())

    async def find_one(self, filter_: ArticleFilter) -> Article:
        """Return the newest article matching *filter_* or raise NotFoundError."""
        filter_ = filter_.model_copy(update={"limit": 1, "offset": 0})
        articles = await self.find(filter_)
        if not articles:
            raise NotFoundError("article not found")
        return articles[0]

    async def find_feed(self, user: User | None, filter_: ArticleFilter | None = None) -> list[Article]:
        """
        Articles written by the authors *user* follows, newest first.

        Only limit/offset of *filter_* apply.  An absent (anonymous) user
        follows nobody and gets an empty feed.
        """
        if user is None:
            return []
        async with self._tx.transaction("articles.find_feed") as db:
            return await find_feed_articles(db, user, filter_ or ArticleFilter())
