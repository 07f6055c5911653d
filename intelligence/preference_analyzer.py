"""
Preference Analyzer - Behavioral Reader Profiling
==================================================

Builds a UserProfile from the reader's history:

1. Category affinity: share of saved articles per category (top 5)
2. Reading level: additive score over collections, question complexity
   and category breadth
3. Content style: practical vs theoretical keyword presence in saved items
4. Interaction patterns: reading time class, question types, save frequency
5. Preferred topics: salient title and question words

Profiling is a pure function of the history (``build_profile``); the
analyzer adds data access and a 15 minute memo in the profile pool.
"""

from collections import Counter
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from config.constants import (
    CACHE_LIMITS,
    COMPLEX_QUESTION_LENGTH,
    COMPLEX_QUESTION_MARKERS,
    PRACTICAL_KEYWORDS,
    PROFILE_KEY_MARKER,
    QUESTION_TYPE_KEYWORDS,
    THEORETICAL_KEYWORDS,
)
from core.enums import ActivityType, ContentStyle, QuestionType, ReadingLevel, ReadingTime
from core.models import CategoryScore, InteractionPatterns, UserProfile, utc_now
from infrastructure.llm_client import AbstractLLMClient, parse_json_response

PROFILE_CACHE_KEY = f"{PROFILE_KEY_MARKER}_analysis"

SAVED_ARTICLES_LIMIT = 100
ACTIVITY_WINDOW_DAYS = 30
ACTIVITY_LIMIT = 500
QUESTIONS_LIMIT = 50
STYLE_SAMPLE_SIZE = 20
MAX_TOP_CATEGORIES = 5
MAX_PREFERRED_TOPICS = 15


# =============================================================================
# PROFILE COMPUTATION
# =============================================================================


def score_categories(saved_articles: Sequence[Dict[str, Any]]) -> List[CategoryScore]:
    """
    Per-category share of saved articles, top 5 descending.

    Ties keep first-seen order.
    """
    if not saved_articles:
        return []

    counts = Counter(a.get("category") or "general" for a in saved_articles)
    total = len(saved_articles)
    return [
        CategoryScore(category=category, score=count / total)
        for category, count in counts.most_common(MAX_TOP_CATEGORIES)
    ]


def is_complex_question(question: str) -> bool:
    lowered = question.lower()
    return len(question) > COMPLEX_QUESTION_LENGTH or any(
        marker in lowered for marker in COMPLEX_QUESTION_MARKERS
    )


def determine_reading_level(
    saved_articles: Sequence[Dict[str, Any]],
    collections: Sequence[Dict[str, Any]],
    questions: Sequence[Dict[str, Any]],
) -> ReadingLevel:
    """
    Additive sophistication score.

    score = min(collections / 5, 2)
          + complex question fraction * 2
          + min(distinct categories / 3, 1)

    >= 3 is advanced, >= 1.5 intermediate, otherwise beginner.
    """
    score = min(len(collections) / 5, 2.0)

    texts = [q.get("question") or "" for q in questions]
    complex_count = sum(1 for t in texts if is_complex_question(t))
    score += complex_count / max(len(texts), 1) * 2

    categories = {a.get("category") for a in saved_articles if a.get("category")}
    score += min(len(categories) / 3, 1.0)

    if score >= 3:
        return ReadingLevel.ADVANCED
    if score >= 1.5:
        return ReadingLevel.INTERMEDIATE
    return ReadingLevel.BEGINNER


def classify_content_style(saved_articles: Sequence[Dict[str, Any]]) -> ContentStyle:
    """Practical vs theoretical ratio over the most recent saved items."""
    practical = theoretical = 0
    for article in saved_articles[:STYLE_SAMPLE_SIZE]:
        text = f"{article.get('title') or ''} {article.get('content') or ''}".lower()
        if any(k in text for k in PRACTICAL_KEYWORDS):
            practical += 1
        if any(k in text for k in THEORETICAL_KEYWORDS):
            theoretical += 1

    total = practical + theoretical
    if total == 0:
        return ContentStyle.MIXED

    ratio = practical / total
    if ratio >= 0.7:
        return ContentStyle.PRACTICAL
    if ratio <= 0.3:
        return ContentStyle.THEORETICAL
    return ContentStyle.MIXED


def estimate_average_read_time(activity: Sequence[Dict[str, Any]]) -> float:
    """Rough minutes-per-session estimate from read events."""
    reads = sum(1 for a in activity if a.get("action") == ActivityType.ARTICLE_READ.value)
    if reads == 0:
        return 5.0
    return min(reads / 2, 15.0)


def classify_reading_time(avg_read_time: float) -> ReadingTime:
    if avg_read_time > 10:
        return ReadingTime.DETAILED
    if avg_read_time > 5:
        return ReadingTime.MIXED
    return ReadingTime.QUICK


def classify_question_types(questions: Sequence[Dict[str, Any]]) -> List[QuestionType]:
    """First matching keyword class per question, 'general' when none match."""
    types: List[QuestionType] = []
    for q in questions:
        text = (q.get("question") or "").lower()
        matched = next(
            (
                QuestionType(name)
                for name, keywords in QUESTION_TYPE_KEYWORDS.items()
                if any(k in text for k in keywords)
            ),
            QuestionType.GENERAL,
        )
        if matched not in types:
            types.append(matched)
    return types


def extract_topics(
    saved_articles: Sequence[Dict[str, Any]], questions: Sequence[Dict[str, Any]]
) -> List[str]:
    """Title words longer than 3 chars, then the first 3 such words per question."""
    topics: Dict[str, None] = {}
    for article in saved_articles:
        for word in (article.get("title") or "").split():
            if len(word) > 3:
                topics.setdefault(word)
    for q in questions:
        words = [w for w in (q.get("question") or "").split() if len(w) > 3]
        for word in words[:3]:
            topics.setdefault(word)
    return list(topics)[:MAX_PREFERRED_TOPICS]


def build_profile(
    saved_articles: Sequence[Dict[str, Any]],
    activity: Sequence[Dict[str, Any]],
    questions: Sequence[Dict[str, Any]],
    collections: Sequence[Dict[str, Any]],
) -> UserProfile:
    """
    Derive a UserProfile from raw history rows.

    Args:
        saved_articles: Saved article rows, newest first
        activity: Activity rows from the last 30 days
        questions: Assistant question rows, newest first
        collections: Book collection rows

    Returns:
        UserProfile (the default beginner/mixed profile for an empty history)
    """
    avg_read_time = estimate_average_read_time(activity)
    save_frequency = min(len(saved_articles) / max(len(activity), 1), 1.0)

    return UserProfile(
        top_categories=score_categories(saved_articles),
        reading_level=determine_reading_level(saved_articles, collections, questions),
        content_style=classify_content_style(saved_articles),
        preferred_topics=extract_topics(saved_articles, questions),
        interaction_patterns=InteractionPatterns(
            reading_time=classify_reading_time(avg_read_time),
            question_types=classify_question_types(questions),
            save_frequency=save_frequency,
        ),
    )


def render_profile_context(profile: UserProfile, document_insights: Optional[Dict[str, Any]] = None) -> str:
    """Prompt block describing the reader."""
    categories = "\n".join(
        f"- {c.category} (interest: {round(c.score * 100)}%)" for c in profile.top_categories
    ) or "- no strong preferences yet"
    patterns = profile.interaction_patterns
    question_types = ", ".join(t.value for t in patterns.question_types) or "none"

    context = f"""## Reader Profile

### Main interests:
{categories}

### Reading level: {profile.reading_level.value}
### Preferred content style: {profile.content_style.value}

### Interaction patterns:
- Reading time: {patterns.reading_time.value}
- Save frequency: {round(patterns.save_frequency * 100)}%
- Question types: {question_types}

### Preferred topics:
{", ".join(profile.preferred_topics[:8]) or "none yet"}"""

    if document_insights and document_insights.get("main_topics"):
        context += f"""

### Personal documents:
- Main topics: {", ".join(document_insights["main_topics"])}
- Expertise: {document_insights.get("expertise", "intermediate")}
- Recent interests: {", ".join(document_insights.get("interests", []))}"""

    return context


# =============================================================================
# ANALYZER SERVICE
# =============================================================================


class PreferenceAnalyzer:
    """
    Profile analyzer over the persistent store.

    Usage:
        analyzer = PreferenceAnalyzer(articles, activity, cache_manager, llm_client)
        profile = await analyzer.analyze_user_profile()
    """

    def __init__(
        self,
        article_repository: Any,
        activity_repository: Any,
        cache_manager: Any,
        llm_client: Optional[AbstractLLMClient] = None,
        analytical_temperature: float = 0.3,
        clock: Callable = utc_now,
    ):
        self.articles = article_repository
        self.activity = activity_repository
        self.cache = cache_manager
        self.llm_client = llm_client
        self.analytical_temperature = analytical_temperature
        self._clock = clock

    async def analyze_user_profile(self, force_refresh: bool = False) -> UserProfile:
        """
        Build (or return the memoized) reader profile.

        Args:
            force_refresh: Ignore the cached profile

        Returns:
            UserProfile
        """
        if not force_refresh:
            cached = await self.cache.get(PROFILE_CACHE_KEY)
            if isinstance(cached, UserProfile):
                logger.debug("Using cached user profile")
                return cached

        logger.info("Building user profile from activity history")
        since = self._clock() - timedelta(days=ACTIVITY_WINDOW_DAYS)

        saved = await self.articles.get_saved_articles(limit=SAVED_ARTICLES_LIMIT)
        activity = await self.activity.get_recent_activity(since=since, limit=ACTIVITY_LIMIT)
        questions = await self.activity.get_recent_questions(limit=QUESTIONS_LIMIT)
        collections = await self.activity.get_collections()

        profile = build_profile(saved, activity, questions, collections)
        await self.cache.set(PROFILE_CACHE_KEY, profile, ttl=CACHE_LIMITS.PROFILE_ANALYSIS_TTL)

        logger.success(
            f"Profile built: {len(profile.top_categories)} top categories, "
            f"level={profile.reading_level.value}, style={profile.content_style.value}"
        )
        return profile

    def generate_personalized_context(
        self, profile: UserProfile, document_insights: Optional[Dict[str, Any]] = None
    ) -> str:
        return render_profile_context(profile, document_insights)

    async def analyze_document_content(self, documents: Iterable[Dict[str, str]]) -> Dict[str, Any]:
        """
        Summarize expertise and interests from the reader's own documents.

        Args:
            documents: Dicts with "name", "content" and "type"

        Returns:
            Dict with main_topics, interests, expertise and content_types;
            a heuristic default when the model is unavailable or its output
            cannot be decoded
        """
        docs = list(documents)
        if not docs:
            return {"main_topics": [], "interests": [], "expertise": "intermediate", "content_types": []}

        default = {
            "main_topics": _basic_topics(docs),
            "interests": [],
            "expertise": "intermediate",
            "content_types": list(dict.fromkeys(d.get("type", "") for d in docs if d.get("type"))),
        }
        if self.llm_client is None or not self.llm_client.is_enabled:
            return default

        samples = "\n".join(
            f'{i}. "{d.get("name", "")}" ({d.get("type", "")})\n{(d.get("content") or "")[:1000]}...\n'
            for i, d in enumerate(docs[:10], start=1)
        )
        prompt = f"""Analyze the reader's documents below.

Documents:
{samples}

Return JSON in this format:
{{
  "main_topics": ["area1", "area2", "area3"],
  "interests": ["recent recurring subjects"],
  "expertise": "beginner/intermediate/advanced",
  "content_types": ["kinds of documents present"]
}}"""

        try:
            text = await self.llm_client.complete_text(
                prompt,
                system="You are an expert content analyst. Always return valid JSON only.",
                temperature=self.analytical_temperature,
            )
        except Exception as e:
            logger.warning(f"Document analysis failed, using heuristic profile: {e}")
            return default

        parsed = parse_json_response(text, default)
        if not isinstance(parsed, dict):
            return default
        return {key: parsed.get(key, value) for key, value in default.items()}

    async def generate_content_recommendations(self, profile: UserProfile, count: int = 5) -> List[str]:
        """
        Topic ideas tailored to the profile.

        Falls back to "advanced <category>" per top category.
        """
        fallback = [f"advanced {c.category}" for c in profile.top_categories[:count]]
        if self.llm_client is None or not self.llm_client.is_enabled:
            return fallback

        prompt = f"""Based on the reader profile, suggest {count} specific article topics.

{render_profile_context(profile)}

Return a JSON array of topics:
["specific topic 1", "topic 2", ...]"""

        try:
            text = await self.llm_client.complete_text(
                prompt, system="You recommend personalized content. Return a JSON array only."
            )
        except Exception as e:
            logger.warning(f"Topic recommendations failed: {e}")
            return fallback

        topics = parse_json_response(text, fallback)
        if not isinstance(topics, list):
            return fallback
        return [str(t) for t in topics if t][:count] or fallback


def _basic_topics(documents: Sequence[Dict[str, str]]) -> List[str]:
    topics: Dict[str, None] = {}
    for doc in documents:
        words = (doc.get("name", "") + " " + (doc.get("content") or "")[:200]).split()
        for word in [w for w in words if len(w) > 4][:5]:
            topics.setdefault(word)
    return list(topics)[:8]


__all__ = [
    "PROFILE_CACHE_KEY",
    "PreferenceAnalyzer",
    "build_profile",
    "score_categories",
    "determine_reading_level",
    "classify_content_style",
    "classify_question_types",
    "extract_topics",
    "render_profile_context",
]
