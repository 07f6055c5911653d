"""
Article Repository: Data Access Layer for Articles

Encapsulates the article reads and writes used by the pipeline:
- Saved-article history for profiling
- Candidate pools for recommendations
- Recent titles and categories for generation
- Persisting generated articles

Design Pattern: Repository Pattern with SQLAlchemy Core
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from loguru import logger
from sqlalchemy import func, select

from core.models import GeneratedArticle
from infrastructure.database import DatabaseManager
from infrastructure.schema import articles_table, saved_articles_table


class ArticleRepository:
    """
    Repository for article data access operations.

    Every method returns plain dicts keyed by column name.
    """

    def __init__(self, db_manager: DatabaseManager):
        """
        Initialize repository with database manager.

        Args:
            db_manager: DatabaseManager instance for database operations
        """
        self.db = db_manager
        logger.debug("ArticleRepository initialized")

    async def get_by_id(self, article_id: str) -> Optional[Dict[str, Any]]:
        query = select(articles_table).where(articles_table.c.id == article_id)
        return await self.db.fetch_one(query)

    async def get_saved_articles(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Most recently saved articles, newest first.

        Args:
            limit: Maximum rows

        Returns:
            Article dicts with an extra ``saved_at`` key
        """
        query = (
            select(articles_table, saved_articles_table.c.saved_at)
            .join(saved_articles_table, saved_articles_table.c.article_id == articles_table.c.id)
            .order_by(saved_articles_table.c.saved_at.desc())
            .limit(limit)
        )
        return await self.db.fetch_all(query)

    async def get_candidates(
        self,
        category: str,
        exclude_ids: Optional[Iterable[str]] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        Newest articles in one category, skipping already-read ids.

        Args:
            category: Category to draw from
            exclude_ids: Article ids to skip
            limit: Maximum rows
        """
        query = select(articles_table).where(articles_table.c.category == category)
        excluded = list(exclude_ids or [])
        if excluded:
            query = query.where(articles_table.c.id.notin_(excluded))
        query = query.order_by(articles_table.c.created_at.desc()).limit(limit)
        return await self.db.fetch_all(query)

    async def get_recent(
        self, limit: int = 10, exclude_ids: Optional[Iterable[str]] = None
    ) -> List[Dict[str, Any]]:
        query = select(articles_table)
        excluded = list(exclude_ids or [])
        if excluded:
            query = query.where(articles_table.c.id.notin_(excluded))
        query = query.order_by(articles_table.c.created_at.desc()).limit(limit)
        return await self.db.fetch_all(query)

    async def get_popular_categories(
        self, limit: int = 5, exclude: Optional[Iterable[str]] = None
    ) -> List[str]:
        """
        Categories ordered by article count, most populated first.

        Args:
            limit: Maximum categories
            exclude: Categories to leave out

        Returns:
            Category names
        """
        count = func.count(articles_table.c.id).label("article_count")
        query = select(articles_table.c.category, count).group_by(articles_table.c.category)
        excluded = list(exclude or [])
        if excluded:
            query = query.where(articles_table.c.category.notin_(excluded))
        query = query.order_by(count.desc()).limit(limit)

        rows = await self.db.fetch_all(query)
        return [row["category"] for row in rows]

    async def find_recent_in_category(
        self, category: str, since: datetime, limit: int = 10
    ) -> List[Dict[str, Any]]:
        query = (
            select(articles_table)
            .where(articles_table.c.category == category)
            .where(articles_table.c.created_at >= since)
            .order_by(articles_table.c.created_at.desc())
            .limit(limit)
        )
        return await self.db.fetch_all(query)

    async def get_recent_titles(self, limit: int = 50) -> List[str]:
        query = (
            select(articles_table.c.title)
            .order_by(articles_table.c.created_at.desc())
            .limit(limit)
        )
        rows = await self.db.fetch_all(query)
        return [row["title"] for row in rows]

    async def create(self, article: GeneratedArticle) -> Dict[str, Any]:
        """
        Persist a generated article.

        Args:
            article: Generated article

        Returns:
            Stored article data
        """
        values = {
            "id": str(uuid4()),
            "title": article.title,
            "content": article.content,
            "excerpt": article.excerpt,
            "category": article.category,
            "tags": list(article.tags),
            "read_time": article.read_time_minutes,
            "difficulty": article.difficulty.value,
            "personality_match": article.personality_match,
            "source": "generated",
            "created_at": article.generated_at,
        }
        await self.db.execute(articles_table.insert().values(values))
        logger.debug(f"Stored generated article {values['id']}: {article.title}")
        return values


__all__ = ["ArticleRepository"]
