"""
Domain Data Models
==================
Pydantic v2 schema definitions for the personalization pipeline:
reader profiles, task requirements, generation plans, recommendations
and telemetry records.

Architecture: Domain-Driven Design + Value Objects
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.enums import (
    ActivityType,
    AlertLevel,
    ContentDepth,
    ContentStyle,
    Difficulty,
    HealthStatus,
    InteractionStyle,
    Language,
    OutputLength,
    QualityLevel,
    QuestionType,
    ReadingLevel,
    ReadingTime,
    TaskComplexity,
    TaskType,
    Urgency,
)


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=False,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# READER PROFILE
# =============================================================================


class CategoryScore(BaseModelConfig):
    """Share of saved items that belong to one category."""

    category: str = Field(..., min_length=1)
    score: float = Field(..., ge=0.0, le=1.0)


class InteractionPatterns(BaseModelConfig):
    """How the reader reads, asks and saves."""

    reading_time: ReadingTime = ReadingTime.QUICK
    question_types: list[QuestionType] = Field(default_factory=list)
    save_frequency: float = Field(default=0.0, ge=0.0, le=1.0)

    @field_validator("question_types")
    @classmethod
    def dedupe_question_types(cls, v: list[QuestionType]) -> list[QuestionType]:
        return list(dict.fromkeys(v))


class UserProfile(BaseModelConfig):
    """
    Behavioral profile derived from activity history.

    Invariants:
    - at most 5 top categories, scores non-increasing, summing to at most 1
    - preferred topics de-duplicated, at most 15
    """

    top_categories: list[CategoryScore] = Field(default_factory=list, max_length=5)
    reading_level: ReadingLevel = ReadingLevel.BEGINNER
    content_style: ContentStyle = ContentStyle.MIXED
    preferred_topics: list[str] = Field(default_factory=list, max_length=15)
    interaction_patterns: InteractionPatterns = Field(default_factory=InteractionPatterns)

    @field_validator("top_categories")
    @classmethod
    def validate_category_scores(cls, v: list[CategoryScore]) -> list[CategoryScore]:
        scores = [c.score for c in v]
        if any(later > earlier for earlier, later in zip(scores, scores[1:])):
            raise ValueError("Category scores must be non-increasing")
        if sum(scores) > 1.0 + 1e-9:
            raise ValueError("Category scores must sum to at most 1")
        return v

    @field_validator("preferred_topics")
    @classmethod
    def dedupe_topics(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(t for t in v if t))

    @property
    def category_names(self) -> list[str]:
        return [c.category for c in self.top_categories]

    def category_score(self, category: str) -> float:
        """Score of a category, 0 when it is not among the top categories."""
        for entry in self.top_categories:
            if entry.category == category:
                return entry.score
        return 0.0


# =============================================================================
# MODEL SELECTION
# =============================================================================


class TaskRequirement(BaseModel):
    """
    Structured description of a generation task.

    Immutable; ``cache_key`` gives a stable serialization used both as
    a cache key and as a log payload.
    """

    model_config = ConfigDict(frozen=True)

    task_type: TaskType
    complexity: TaskComplexity = TaskComplexity.MEDIUM
    output_length: OutputLength = OutputLength.MEDIUM
    language: Language = Language.ENGLISH
    quality: QualityLevel = QualityLevel.STANDARD
    urgency: Urgency = Urgency.MEDIUM
    context: Optional[str] = None


# =============================================================================
# GENERATION
# =============================================================================


class GenerationPlan(BaseModelConfig):
    """
    Allocation of a content quota across categories and topics.

    ``allocation`` is ordered by category score; every included category
    gets at least one slot and the counts sum to ``total_articles``.
    """

    total_articles: int = Field(..., ge=0)
    allocation: dict[str, int] = Field(default_factory=dict)
    suggested_topics: list[str] = Field(default_factory=list)
    target_difficulty: Difficulty = Difficulty.INTERMEDIATE
    content_style: ContentStyle = ContentStyle.MIXED
    persona_description: str = ""

    @model_validator(mode="after")
    def validate_allocation(self) -> "GenerationPlan":
        if any(n < 1 for n in self.allocation.values()):
            raise ValueError("Every included category needs at least one article")
        if sum(self.allocation.values()) != self.total_articles:
            raise ValueError("Allocation must sum to total_articles")
        return self


class GeneratedArticle(BaseModelConfig):
    """Article produced by the text-generation capability."""

    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    excerpt: str = ""
    category: str
    tags: list[str] = Field(default_factory=list)
    read_time_minutes: int = Field(default=5, ge=1)
    difficulty: Difficulty = Difficulty.INTERMEDIATE
    personality_match: float = Field(default=75.0, ge=0.0, le=100.0)
    topic: str = ""
    model_name: Optional[str] = None
    generated_at: datetime = Field(default_factory=utc_now)
    id: Optional[str] = None  # set once persisted


# =============================================================================
# RECOMMENDATIONS
# =============================================================================


class RecommendedArticle(BaseModelConfig):
    """Scored recommendation candidate. Ephemeral per request."""

    id: str
    title: str
    category: str
    excerpt: str = ""
    read_time_minutes: int = Field(default=5, ge=0)
    personality_match: float = Field(default=70.0, ge=0.0, le=100.0)
    relevance_score: float = Field(default=0.0, ge=0.0)
    reasoning: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class BehaviorPattern(BaseModelConfig):
    """Short-horizon reading behavior used to tune recommendations."""

    reading_velocity: float = Field(default=0.0, ge=0.0)
    engagement_level: float = Field(default=0.0, ge=0.0)
    content_depth_preference: ContentDepth = ContentDepth.MEDIUM
    interaction_style: InteractionStyle = InteractionStyle.PASSIVE
    learning_goals: list[str] = Field(default_factory=list)


class UserRecommendations(BaseModelConfig):
    """Recommendation batch returned to the caller."""

    articles: list[RecommendedArticle] = Field(default_factory=list)
    suggested_topics: list[str] = Field(default_factory=list)
    suggested_categories: list[str] = Field(default_factory=list)
    difficulty: ReadingLevel = ReadingLevel.BEGINNER
    reasoning: str = ""
    confidence: int = Field(..., ge=40, le=95)
    is_fallback: bool = False


# =============================================================================
# EXTERNAL DOCUMENTS
# =============================================================================


class DocumentMetadata(BaseModelConfig):
    """Listing entry from the external document source."""

    id: str
    name: str
    mime_type: str = "text/plain"
    modified_at: Optional[datetime] = None
    size: Optional[int] = None


class DocumentInsight(BaseModelConfig):
    """Analysis of one external document."""

    document_id: str
    title: str
    main_topics: list[str] = Field(default_factory=list)
    key_insights: list[str] = Field(default_factory=list)
    difficulty: ReadingLevel = ReadingLevel.INTERMEDIATE
    category: str = "general"
    language: Language = Language.ENGLISH
    suggested_article_topics: list[str] = Field(default_factory=list)
    relevance_score: float = Field(default=50.0, ge=0.0, le=100.0)


class ContentMix(BaseModelConfig):
    """Content suggestions distilled from document insights."""

    recommended_categories: list[str] = Field(default_factory=list)
    suggested_topics: list[str] = Field(default_factory=list)
    personalized_titles: list[str] = Field(default_factory=list)
    learning_path: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.recommended_categories or self.suggested_topics)


# =============================================================================
# TELEMETRY
# =============================================================================


class PerformanceSample(BaseModelConfig):
    """One timed operation against a service."""

    timestamp: datetime = Field(default_factory=utc_now)
    service: str
    operation: str
    duration_ms: float = Field(..., ge=0.0)
    success: bool
    metadata: dict[str, Any] = Field(default_factory=dict)


class BehaviorAction(BaseModelConfig):
    """A single user action within a session."""

    timestamp: datetime = Field(default_factory=utc_now)
    type: str
    target: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class BehaviorSession(BaseModelConfig):
    """
    Ordered actions of one user session.

    Duration and engagement are recomputed after every append.
    """

    session_id: str
    user_id: str
    actions: list[BehaviorAction] = Field(default_factory=list)
    session_duration_ms: float = 0.0
    engagement_score: float = 0.0

    def append(self, action: BehaviorAction) -> None:
        self.actions.append(action)
        first, last = self.actions[0].timestamp, self.actions[-1].timestamp
        self.session_duration_ms = max((last - first).total_seconds() * 1000, 0.0)
        self.engagement_score = float(sum(ActivityType.weight_of(a.type) for a in self.actions))

    @property
    def started_at(self) -> Optional[datetime]:
        return self.actions[0].timestamp if self.actions else None


class SystemAlert(BaseModelConfig):
    """Operational alert kept in a bounded ring."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    level: AlertLevel
    message: str
    timestamp: datetime = Field(default_factory=utc_now)
    service: str
    details: dict[str, Any] = Field(default_factory=dict)


class HealthState(BaseModelConfig):
    """Consecutive-failure health of one external dependency."""

    status: HealthStatus = HealthStatus.HEALTHY
    consecutive_failures: int = Field(default=0, ge=0)
    last_failure_at: Optional[datetime] = None


class SystemInsights(BaseModelConfig):
    """On-demand aggregate of telemetry."""

    performance: dict[str, Any] = Field(default_factory=dict)
    user_behavior: dict[str, Any] = Field(default_factory=dict)
    content_metrics: dict[str, Any] = Field(default_factory=dict)
    ai_metrics: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
    alerts: list[SystemAlert] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "utc_now",
    "as_utc",
    "BaseModelConfig",
    "CategoryScore",
    "InteractionPatterns",
    "UserProfile",
    "TaskRequirement",
    "GenerationPlan",
    "GeneratedArticle",
    "RecommendedArticle",
    "BehaviorPattern",
    "UserRecommendations",
    "DocumentMetadata",
    "DocumentInsight",
    "ContentMix",
    "PerformanceSample",
    "BehaviorAction",
    "BehaviorSession",
    "SystemAlert",
    "HealthState",
    "SystemInsights",
]
