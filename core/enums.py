"""
Domain Enumerations & Type Taxonomy
====================================
Type-safe enumerations for the personalization domain: reader profiles,
generation requirements, backend descriptors and operational health.

String enums serialize directly to JSON and to cache keys without an
integer mapping layer.
"""

from enum import Enum


# =============================================================================
# READER PROFILE
# =============================================================================


class ReadingLevel(str, Enum):
    """Reader sophistication derived from collections, questions and breadth."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    def __str__(self) -> str:
        return self.value


class ContentStyle(str, Enum):
    """Preferred register of saved material."""

    PRACTICAL = "practical"  # Guides, steps, tips
    THEORETICAL = "theoretical"  # Concepts, research, principles
    MIXED = "mixed"

    def __str__(self) -> str:
        return self.value


class ReadingTime(str, Enum):
    """Typical reading session length."""

    QUICK = "quick"
    MIXED = "mixed"
    DETAILED = "detailed"


class QuestionType(str, Enum):
    """Keyword classes of questions asked to the assistant."""

    INSTRUCTIONS = "instructions"  # "how"
    EXPLANATIONS = "explanations"  # "why"
    DEFINITIONS = "definitions"  # "what"
    EXAMPLES = "examples"  # "example"
    GENERAL = "general"


class ContentDepth(str, Enum):
    """Preferred article depth, derived from long-article reading ratio."""

    SHALLOW = "shallow"
    MEDIUM = "medium"
    DEEP = "deep"


class InteractionStyle(str, Enum):
    """How actively the reader engages with the assistant versus saving."""

    PASSIVE = "passive"
    ACTIVE = "active"
    MIXED = "mixed"


class ActivityType(str, Enum):
    """
    Tracked user action types.

    Values match the stored activity records and the behavior session
    action types used by the analytics aggregator.
    """

    ARTICLE_READ = "article_read"
    ARTICLE_SAVE = "article_save"
    CONTENT_VIEW = "content_view"
    AI_QUESTION = "ai_question"
    SHARE = "share"
    LIKE = "like"
    CONTENT_FEEDBACK = "content_feedback"

    @property
    def engagement_weight(self) -> int:
        """Contribution of one action of this type to a session's engagement score."""
        weights = {
            ActivityType.ARTICLE_READ: 1,
            ActivityType.ARTICLE_SAVE: 3,
            ActivityType.AI_QUESTION: 5,
            ActivityType.SHARE: 4,
            ActivityType.LIKE: 2,
        }
        return weights.get(self, 0)

    @classmethod
    def weight_of(cls, action_type: str) -> int:
        """Engagement weight of a raw action string, 0 for untracked types."""
        try:
            return cls(action_type).engagement_weight
        except ValueError:
            return 0


# =============================================================================
# GENERATION REQUIREMENTS
# =============================================================================


class TaskType(str, Enum):
    """Kinds of work a generation backend is asked to do."""

    CONTENT_GENERATION = "content_generation"
    QUESTION_ANSWERING = "question_answering"
    ANALYSIS = "analysis"
    TRANSLATION = "translation"
    CODING = "coding"
    CREATIVE = "creative"


class TaskComplexity(str, Enum):
    """Requested task complexity (rank 1..3)."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"

    @property
    def rank(self) -> int:
        return {TaskComplexity.SIMPLE: 1, TaskComplexity.MEDIUM: 2, TaskComplexity.COMPLEX: 3}[
            self
        ]


class OutputLength(str, Enum):
    """Expected completion length."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    @property
    def required_tokens(self) -> int:
        """Output token capacity needed for this length class."""
        return {OutputLength.SHORT: 500, OutputLength.MEDIUM: 2000, OutputLength.LONG: 8000}[self]


class Language(str, Enum):
    """Content language."""

    HEBREW = "hebrew"
    ENGLISH = "english"
    MIXED = "mixed"


class QualityLevel(str, Enum):
    """Requested output quality."""

    DRAFT = "draft"
    STANDARD = "standard"
    PREMIUM = "premium"

    @property
    def complexity_class(self) -> "ComplexityClass":
        """Backend complexity class that best matches this quality level."""
        return {
            QualityLevel.DRAFT: ComplexityClass.LIGHT,
            QualityLevel.STANDARD: ComplexityClass.MEDIUM,
            QualityLevel.PREMIUM: ComplexityClass.HEAVY,
        }[self]


class Urgency(str, Enum):
    """How soon the caller needs the result."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def speed_class(self) -> "SpeedClass":
        """Backend speed class that matches this urgency."""
        return {
            Urgency.HIGH: SpeedClass.FAST,
            Urgency.MEDIUM: SpeedClass.MEDIUM,
            Urgency.LOW: SpeedClass.SLOW,
        }[self]


class SpeedClass(str, Enum):
    """Backend latency class."""

    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


class ComplexityClass(str, Enum):
    """Backend capability class (rank 1..3)."""

    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"

    @property
    def rank(self) -> int:
        return {ComplexityClass.LIGHT: 1, ComplexityClass.MEDIUM: 2, ComplexityClass.HEAVY: 3}[
            self
        ]


class Difficulty(str, Enum):
    """Target difficulty of generated articles."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# =============================================================================
# OPERATIONAL STATE
# =============================================================================


class HealthStatus(str, Enum):
    """
    Health of an external dependency.

    Derived from the consecutive failure count:
    0 -> healthy, 1-2 -> degraded, >=3 -> error.
    """

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ERROR = "error"

    @classmethod
    def from_failures(cls, consecutive_failures: int) -> "HealthStatus":
        if consecutive_failures <= 0:
            return cls.HEALTHY
        if consecutive_failures < 3:
            return cls.DEGRADED
        return cls.ERROR


class AlertLevel(str, Enum):
    """System alert severity."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class InsightType(str, Enum):
    """Persisted insight record kinds."""

    GENERATED_CONTENT = "generated_content"
    DOCUMENT_ANALYSIS = "document_analysis"
    WEEKLY_REPORT = "weekly_report"
