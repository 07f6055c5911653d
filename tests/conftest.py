"""
Pytest Configuration and Fixture Library

Shared test infrastructure providing:
- Manual clocks for TTL and retention checks
- A scripted text-generation client
- Mocked repositories with async methods
- Reader profile and stored-article builders

Design Pattern: Test Data Builder + Fixture Factory
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, Mock

import pytest

from core.enums import ContentStyle, ReadingLevel
from core.models import CategoryScore, InteractionPatterns, UserProfile
from infrastructure.analytics import AnalyticsAggregator
from infrastructure.llm_client import AbstractLLMClient, LLMResponse, ModelProvider
from infrastructure.monitoring import MetricsCollector
from knowledge.activity_repository import ActivityRepository
from knowledge.article_repository import ArticleRepository
from knowledge.insight_repository import InsightRepository
from optimization.cache_manager import CacheManager

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")
    config.addinivalue_line("markers", "integration: mark test as multi-component pipeline test")


# ============================================================================
# CLOCKS
# ============================================================================


class ManualClock:
    """Monotonic seconds clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualDateClock:
    """Aware datetime clock advanced by hand."""

    def __init__(self, start: datetime = FIXED_NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def date_clock() -> ManualDateClock:
    return ManualDateClock()


# ============================================================================
# TEXT GENERATION
# ============================================================================

Reply = Union[str, Exception, Callable[[List[Dict[str, str]]], str]]


class ScriptedLLMClient(AbstractLLMClient):
    """
    Text-generation client replaying scripted replies.

    Replies are consumed in order; the last one repeats once the script is
    exhausted. A reply may be a string, an exception to raise, or a
    callable receiving the message list.
    """

    def __init__(self, replies: Optional[List[Reply]] = None, enabled: bool = True):
        self.replies: List[Reply] = list(replies or ["{}"])
        self.enabled = enabled
        self.calls: List[Dict[str, Any]] = []

    @property
    def is_enabled(self) -> bool:
        return self.enabled

    async def complete(self, messages, model=None, temperature=None, max_tokens=None) -> LLMResponse:
        self.calls.append({"messages": messages, "model": model, "temperature": temperature})
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        content = reply(messages) if callable(reply) else reply
        return LLMResponse(content=content, model=model or "scripted", provider=ModelProvider.OPENAI)

    @property
    def prompts(self) -> List[str]:
        return [call["messages"][-1]["content"] for call in self.calls]


@pytest.fixture
def scripted_llm() -> Callable[..., ScriptedLLMClient]:
    """Factory fixture: ``scripted_llm(["reply", ...])``."""
    return ScriptedLLMClient


# ============================================================================
# SHARED SERVICES
# ============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def cache_manager(clock) -> CacheManager:
    return CacheManager(clock=clock)


@pytest.fixture
def analytics(date_clock, cache_manager) -> AnalyticsAggregator:
    return AnalyticsAggregator(cache_manager=cache_manager, clock=date_clock)


# ============================================================================
# REPOSITORY MOCKS
# ============================================================================


@pytest.fixture
def article_repository():
    """Mock ArticleRepository with an empty store."""
    mock = Mock(spec=ArticleRepository)
    mock.get_saved_articles = AsyncMock(return_value=[])
    mock.get_candidates = AsyncMock(return_value=[])
    mock.get_recent = AsyncMock(return_value=[])
    mock.get_popular_categories = AsyncMock(return_value=[])
    mock.find_recent_in_category = AsyncMock(return_value=[])
    mock.get_recent_titles = AsyncMock(return_value=[])

    created: List[Any] = []

    async def create(article):
        created.append(article)
        return {"id": f"article-{len(created)}"}

    mock.create = AsyncMock(side_effect=create)
    mock.created = created
    return mock


@pytest.fixture
def activity_repository():
    """Mock ActivityRepository with no history."""
    mock = Mock(spec=ActivityRepository)
    mock.get_recent_activity = AsyncMock(return_value=[])
    mock.count_since = AsyncMock(return_value=0)
    mock.get_read_article_ids = AsyncMock(return_value=[])
    mock.get_recent_questions = AsyncMock(return_value=[])
    mock.get_collections = AsyncMock(return_value=[])
    mock.record = AsyncMock()
    mock.delete_older_than = AsyncMock(return_value=0)
    return mock


@pytest.fixture
def insight_repository():
    """Mock InsightRepository recording created insights."""
    mock = Mock(spec=InsightRepository)
    created: List[Dict[str, Any]] = []

    async def create(insight_type, title, content, metadata=None):
        created.append({"type": insight_type, "title": title, "content": content, "metadata": metadata})
        return {"id": f"insight-{len(created)}"}

    mock.create = AsyncMock(side_effect=create)
    mock.get_recent = AsyncMock(return_value=[])
    mock.delete_older_than = AsyncMock(return_value=0)
    mock.created = created
    return mock


# ============================================================================
# TEST DATA BUILDERS
# ============================================================================


def make_profile(
    categories: Optional[List[tuple]] = None,
    reading_level: ReadingLevel = ReadingLevel.INTERMEDIATE,
    content_style: ContentStyle = ContentStyle.MIXED,
    topics: Optional[List[str]] = None,
) -> UserProfile:
    """Build a profile from (category, score) pairs in descending order."""
    return UserProfile(
        top_categories=[CategoryScore(category=c, score=s) for c, s in (categories or [])],
        reading_level=reading_level,
        content_style=content_style,
        preferred_topics=topics or [],
        interaction_patterns=InteractionPatterns(),
    )


def make_article(
    article_id: str,
    category: str = "technology",
    title: Optional[str] = None,
    read_time: Optional[int] = 5,
    content: str = "",
    created_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build a stored-article row as returned by the repositories."""
    return {
        "id": article_id,
        "title": title or f"Article {article_id}",
        "category": category,
        "content": content,
        "excerpt": "",
        "read_time": read_time,
        "created_at": created_at,
    }


@pytest.fixture
def profile_builder() -> Callable[..., UserProfile]:
    return make_profile


@pytest.fixture
def article_builder() -> Callable[..., Dict[str, Any]]:
    return make_article
