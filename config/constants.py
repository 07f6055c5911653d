"""
System Constants & Invariants
==============================
Immutable domain constants defining cache limits, retry policy,
scoring weights and keyword tables used by the personalization pipeline.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass
from typing import Final

# =============================================================================
# CACHE LIMITS
# =============================================================================


@dataclass(frozen=True)
class CacheLimits:
    """Pool sizes and TTLs (seconds) for the two cache pools and their users."""

    CONTENT_MAX_ENTRIES: int = 50
    CONTENT_TTL: int = 3600
    PROFILE_MAX_ENTRIES: int = 10
    PROFILE_TTL: int = 1800

    # Per-artifact TTLs
    PROFILE_ANALYSIS_TTL: int = 900
    MODEL_SELECTION_TTL: int = 600
    RECOMMENDATIONS_TTL: int = 600
    GENERATION_PLAN_TTL: int = 3600
    GENERATED_ARTICLE_TTL: int = 14400
    SYSTEM_INSIGHTS_TTL: int = 900


CACHE_LIMITS: Final = CacheLimits()

# Keys containing this marker are routed to the profile pool
PROFILE_KEY_MARKER: Final = "user_profile"

# =============================================================================
# RESILIENCE
# =============================================================================

BASE_DELAY_SECONDS: Final = 1.0
MAX_RETRIES: Final = 3
CRITICAL_FAILURE_THRESHOLD: Final = 5

# =============================================================================
# ANALYTICS
# =============================================================================


@dataclass(frozen=True)
class AnalyticsWindows:
    """Retention, windows and thresholds for telemetry aggregation."""

    RETENTION_DAYS: int = 7
    PERFORMANCE_WINDOW_HOURS: int = 24
    BEHAVIOR_WINDOW_DAYS: int = 7
    MAX_ALERTS: int = 100
    SAMPLES_PER_KEY: int = 100
    SLOW_OPERATION_MS: float = 5000.0

    # Recommendation thresholds
    SLOW_RESPONSE_MS: float = 2000.0
    HIGH_ERROR_RATE_PCT: float = 5.0
    LOW_CACHE_HIT_RATE_PCT: float = 70.0
    SHORT_SESSION_MINUTES: float = 5.0
    SLOW_GENERATION_MS: float = 5000.0
    LOW_SATISFACTION: float = 0.7


ANALYTICS_WINDOWS: Final = AnalyticsWindows()

# =============================================================================
# RECOMMENDATION SCORING
# =============================================================================


@dataclass(frozen=True)
class RecommendationWeights:
    """Additive relevance factors and confidence increments."""

    CATEGORY_MATCH: float = 40.0
    KEYWORD_PER_TOPIC: float = 10.0
    KEYWORD_CAP: float = 30.0
    BASE_PERSONALITY_MATCH: float = 70.0

    BASE_CONFIDENCE: int = 60
    FALLBACK_CONFIDENCE: int = 40
    MAX_CONFIDENCE: int = 95

    TOP_CATEGORY_SHARE: float = 0.7
    EXPLORATION_SHARE: float = 0.3
    CANDIDATE_MULTIPLIER: int = 3
    AI_REFINEMENT_SLICE: int = 5


RECOMMENDATION_WEIGHTS: Final = RecommendationWeights()

FALLBACK_RECOMMENDATION_LABEL: Final = "Basic recommendations due to insufficient data"

# (max age in days, freshness points); older items score 0
FRESHNESS_TIERS: Final = ((1, 15.0), (7, 10.0), (30, 5.0))

# =============================================================================
# MODEL SELECTION
# =============================================================================

TASK_STRENGTHS: Final = {
    "content_generation": ("reasoning", "creative_writing"),
    "question_answering": ("reasoning", "quick_responses"),
    "analysis": ("reasoning", "math", "analysis"),
    "translation": ("multilingual", "language"),
    "coding": ("code_generation", "reasoning"),
    "creative": ("creative_writing", "storytelling"),
}

# =============================================================================
# PROFILE KEYWORDS
# =============================================================================

# English and Hebrew variants; saved material is bilingual
PRACTICAL_KEYWORDS: Final = (
    "guide", "how to", "steps", "tips", "tutorial", "practical",
    "מדריך", "איך", "שלבים", "טיפים",
)
THEORETICAL_KEYWORDS: Final = (
    "theory", "research", "principle", "concept", "what is", "understanding",
    "תיאוריה", "מחקר", "עיקרון", "מושג", "מהו", "הבנת",
)
COMPLEX_QUESTION_MARKERS: Final = (
    "compare", "analyze", "explain the relation", "השווה", "נתח", "הסבר את הקשר",
)
COMPLEX_QUESTION_LENGTH: Final = 50

QUESTION_TYPE_KEYWORDS: Final = {
    "instructions": ("how", "איך", "כיצד"),
    "explanations": ("why", "למה", "מדוע"),
    "definitions": ("what", "מה", "מהו"),
    "examples": ("example", "דוגמה", "לדוגמה"),
}

# Topic seeds per category for suggestions and synthesized topics
CATEGORY_TOPICS: Final = {
    "technology": ("artificial intelligence", "software architecture", "cybersecurity"),
    "science": ("research methods", "recent discoveries", "scientific thinking"),
    "psychology": ("habits", "motivation", "cognitive biases"),
    "productivity": ("time management", "deep work", "planning systems"),
    "self-improvement": ("personal growth", "learning strategies", "goal setting"),
    "business": ("strategy", "leadership", "innovation"),
    "health": ("nutrition", "sleep", "exercise"),
    "philosophy": ("ethics", "stoicism", "critical thinking"),
}

DEFAULT_CATEGORIES: Final = ("self-improvement", "productivity", "psychology")
