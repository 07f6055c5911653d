"""
Recommendation Engine - Multi-Factor Article Ranking
=====================================================

Ranks stored articles for the reader:

1. Profile + 14-day behavior pattern (velocity, engagement, depth, style)
2. Candidate pool: 70% from top categories (unread), 30% exploration
3. Additive relevance: category affinity, length fit, topic overlap,
   freshness; rule-based personality match
4. Best-effort AI refinement of the top slice
5. Confidence from data sufficiency

Any pipeline failure, or an empty candidate pool, degrades to the
"most recent N" fallback at fixed confidence 40.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from loguru import logger

from config.constants import (
    CACHE_LIMITS,
    CATEGORY_TOPICS,
    FALLBACK_RECOMMENDATION_LABEL,
    FRESHNESS_TIERS,
    RECOMMENDATION_WEIGHTS,
)
from core.enums import (
    ActivityType,
    ContentDepth,
    ContentStyle,
    InteractionStyle,
    Language,
    OutputLength,
    QualityLevel,
    ReadingLevel,
    TaskComplexity,
    TaskType,
    Urgency,
)
from core.models import (
    BehaviorPattern,
    RecommendedArticle,
    TaskRequirement,
    UserProfile,
    UserRecommendations,
    as_utc,
    utc_now,
)
from infrastructure.llm_client import parse_json_response

BEHAVIOR_WINDOW_DAYS = 14
BEHAVIOR_ACTIVITY_LIMIT = 500
BEHAVIOR_SAVED_LIMIT = 50
BEHAVIOR_QUESTIONS_LIMIT = 30
EXPLORATION_CATEGORIES = 3

ENGAGEMENT_ACTIONS = frozenset(
    {ActivityType.ARTICLE_SAVE.value, ActivityType.AI_QUESTION.value, ActivityType.SHARE.value}
)
HOW_TO_TITLE_MARKERS = ("how", "guide", "איך", "מדריך")

FALLBACK_TOPICS = ("personal development", "technology")
FALLBACK_CATEGORIES = ("self-improvement", "technology")


# =============================================================================
# BEHAVIOR PATTERN
# =============================================================================


def build_behavior_pattern(
    activity: Sequence[Dict[str, Any]],
    saved_articles: Sequence[Dict[str, Any]],
    questions: Sequence[Dict[str, Any]],
) -> BehaviorPattern:
    """
    Short-horizon behavior summary.

    Args:
        activity: Activity rows from the behavior window
        saved_articles: Recently saved article rows
        questions: Recent assistant question rows
    """
    reads = sum(1 for a in activity if a.get("action") == ActivityType.ARTICLE_READ.value)
    engaged = sum(1 for a in activity if a.get("action") in ENGAGEMENT_ACTIONS)

    long_saved = sum(1 for a in saved_articles if (a.get("read_time") or 0) > 8)
    long_ratio = long_saved / max(len(saved_articles), 1)
    if long_ratio > 0.6:
        depth = ContentDepth.DEEP
    elif long_ratio > 0.3:
        depth = ContentDepth.MEDIUM
    else:
        depth = ContentDepth.SHALLOW

    if len(questions) > len(saved_articles):
        style = InteractionStyle.ACTIVE
    elif len(questions) > len(saved_articles) * 0.5:
        style = InteractionStyle.MIXED
    else:
        style = InteractionStyle.PASSIVE

    return BehaviorPattern(
        reading_velocity=reads / max(len(activity), 1),
        engagement_level=engaged / max(reads, 1),
        content_depth_preference=depth,
        interaction_style=style,
        learning_goals=extract_learning_goals(questions, saved_articles),
    )


def extract_learning_goals(
    questions: Sequence[Dict[str, Any]], saved_articles: Sequence[Dict[str, Any]]
) -> List[str]:
    goals: Dict[str, None] = {}
    for q in questions:
        text = (q.get("question") or "").lower()
        if "how" in text or "איך" in text:
            goals.setdefault("practical skills")
        if "what is" in text or "מה זה" in text or "מהו" in text:
            goals.setdefault("theoretical understanding")
    for article in saved_articles:
        if article.get("category") == "technology":
            goals.setdefault("technology")
        if article.get("category") == "self-improvement":
            goals.setdefault("personal development")
    return list(goals)[:3]


# =============================================================================
# SCORING FACTORS
# =============================================================================


def length_score(read_time: int, preference: ContentDepth) -> float:
    if preference == ContentDepth.SHALLOW:
        return 20.0 if read_time <= 5 else 10.0 if read_time <= 8 else 0.0
    if preference == ContentDepth.MEDIUM:
        return 20.0 if 5 <= read_time <= 10 else 10.0
    return 20.0 if read_time >= 8 else 10.0 if read_time >= 5 else 0.0


def topic_score(text: str, preferred_topics: Sequence[str]) -> float:
    lowered = text.lower()
    hits = sum(1 for topic in preferred_topics if topic and topic.lower() in lowered)
    return min(RECOMMENDATION_WEIGHTS.KEYWORD_CAP, hits * RECOMMENDATION_WEIGHTS.KEYWORD_PER_TOPIC)


def freshness_score(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0.0
    age_days = (now - as_utc(created_at)).total_seconds() / 86400
    for max_days, points in FRESHNESS_TIERS:
        if age_days <= max_days:
            return points
    return 0.0


def personality_match(
    article: Dict[str, Any], profile: UserProfile, pattern: BehaviorPattern
) -> float:
    match = RECOMMENDATION_WEIGHTS.BASE_PERSONALITY_MATCH
    title = (article.get("title") or "").lower()
    content = article.get("content") or ""
    read_time = article.get("read_time") or 5

    if profile.content_style == ContentStyle.PRACTICAL and any(m in title for m in HOW_TO_TITLE_MARKERS):
        match += 10
    if pattern.interaction_style == InteractionStyle.ACTIVE and "?" in content:
        match += 5
    if pattern.content_depth_preference == ContentDepth.DEEP and read_time > 10:
        match += 15
    elif pattern.content_depth_preference == ContentDepth.SHALLOW and read_time < 5:
        match += 10

    return min(100.0, match)


def article_tags(article: Dict[str, Any]) -> List[str]:
    """Category plus the first two title words longer than 3 characters."""
    words = [w for w in (article.get("title") or "").split() if len(w) > 3]
    return list(dict.fromkeys([article.get("category") or "general", *words[:2]]))


def score_article(
    article: Dict[str, Any], profile: UserProfile, pattern: BehaviorPattern, now: datetime
) -> RecommendedArticle:
    """Additive relevance score with one reasoning line per contributing factor."""
    relevance = 0.0
    reasoning: List[str] = []
    category = article.get("category") or "general"
    read_time = article.get("read_time") or 5

    affinity = profile.category_score(category)
    if affinity > 0:
        points = affinity * RECOMMENDATION_WEIGHTS.CATEGORY_MATCH
        relevance += points
        reasoning.append(f"Preferred category: {category} (+{points:.1f})")

    points = length_score(read_time, pattern.content_depth_preference)
    relevance += points
    if points > 0:
        reasoning.append(f"Suitable length: {read_time} min (+{points:.1f})")

    points = topic_score(f"{article.get('title') or ''} {article.get('content') or ''}", profile.preferred_topics)
    relevance += points
    if points > 0:
        reasoning.append(f"Relevant topics (+{points:.1f})")

    points = freshness_score(article.get("created_at"), now)
    relevance += points
    if points > 5:
        reasoning.append(f"Fresh content (+{points:.1f})")

    return RecommendedArticle(
        id=str(article["id"]),
        title=article.get("title") or "",
        category=category,
        excerpt=article.get("excerpt") or (article.get("content") or "")[:200],
        read_time_minutes=read_time,
        personality_match=personality_match(article, profile, pattern),
        relevance_score=max(0.0, relevance),
        reasoning=reasoning,
        tags=article_tags(article),
    )


def calculate_confidence(profile: UserProfile, pattern: BehaviorPattern, candidate_count: int) -> int:
    confidence = RECOMMENDATION_WEIGHTS.BASE_CONFIDENCE
    if len(profile.top_categories) >= 3:
        confidence += 15
    if pattern.reading_velocity > 0.3:
        confidence += 10
    if candidate_count >= 20:
        confidence += 10
    return min(RECOMMENDATION_WEIGHTS.MAX_CONFIDENCE, confidence)


def apply_refinements(
    articles: List[RecommendedArticle], refinements: Any
) -> List[RecommendedArticle]:
    """
    Merge model refinements into the top slice.

    Refined items move to the front in the order the model returned them;
    everything else keeps its relative order. Malformed entries are ignored.
    """
    if not isinstance(refinements, list):
        return articles

    promoted: List[int] = []
    for entry in refinements:
        if not isinstance(entry, dict):
            continue
        try:
            index = int(entry.get("index")) - 1
        except (TypeError, ValueError):
            continue
        if not 0 <= index < len(articles) or index in promoted:
            continue

        article = articles[index]
        match = entry.get("personality_match", entry.get("personalityMatch"))
        if isinstance(match, (int, float)) and 0 <= match <= 100:
            article.personality_match = float(match)
        if entry.get("reasoning"):
            article.reasoning.append(f"AI: {entry['reasoning']}")
        tags = entry.get("tags")
        if isinstance(tags, list):
            article.tags = [*article.tags, *(str(t) for t in tags)]
        promoted.append(index)

    rest = [a for i, a in enumerate(articles) if i not in promoted]
    return [articles[i] for i in promoted] + rest


# =============================================================================
# ENGINE
# =============================================================================


class RecommendationEngine:
    """
    Personalized article recommendations.

    Results are memoized for 10 minutes per (user, limit) and each batch is
    written to the side channel.
    """

    def __init__(
        self,
        preference_analyzer: Any,
        article_repository: Any,
        activity_repository: Any,
        cache_manager: Any,
        model_selector: Optional[Any] = None,
        llm_client: Optional[Any] = None,
        side_channel: Optional[Any] = None,
        metrics_collector: Optional[Any] = None,
        language: Language = Language.ENGLISH,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.preference_analyzer = preference_analyzer
        self.articles = article_repository
        self.activity = activity_repository
        self.cache = cache_manager
        self.model_selector = model_selector
        self.llm_client = llm_client
        self.side_channel = side_channel
        self.metrics_collector = metrics_collector
        self.language = language
        self._clock = clock

    async def generate_personalized_recommendations(
        self, user_id: str = "default-user", limit: int = 10
    ) -> UserRecommendations:
        """
        Rank stored articles for the reader.

        Args:
            user_id: Reader id (cache and log scope)
            limit: Maximum number of articles

        Returns:
            UserRecommendations with at most ``limit`` articles
        """
        if limit <= 0:
            return UserRecommendations(
                confidence=RECOMMENDATION_WEIGHTS.FALLBACK_CONFIDENCE,
                reasoning=FALLBACK_RECOMMENDATION_LABEL,
                is_fallback=True,
            )

        cache_key = f"recommendations_{user_id}_{limit}"
        cached = await self.cache.get(cache_key)
        if isinstance(cached, UserRecommendations):
            logger.debug(f"Using cached recommendations for {user_id}")
            return cached

        try:
            recommendations = await self._recommend(limit)
        except Exception as e:
            logger.error(f"Recommendation pipeline failed for {user_id}: {e}")
            recommendations = None

        if recommendations is None:
            return await self._fallback(limit)

        await self.cache.set(cache_key, recommendations, ttl=CACHE_LIMITS.RECOMMENDATIONS_TTL)
        self._log_recommendations(user_id, recommendations)

        logger.success(
            f"Generated {len(recommendations.articles)} recommendations for {user_id} "
            f"(confidence {recommendations.confidence}%)"
        )
        return recommendations

    async def _recommend(self, limit: int) -> Optional[UserRecommendations]:
        profile: UserProfile = await self.preference_analyzer.analyze_user_profile()
        pattern = await self.analyze_behavior_pattern()
        logger.info(
            f"Recommending for profile level={profile.reading_level.value}, "
            f"style={pattern.interaction_style.value}"
        )

        candidates = await self.get_candidate_articles(profile, limit * RECOMMENDATION_WEIGHTS.CANDIDATE_MULTIPLIER)
        if not candidates:
            logger.warning("No candidate articles, using basic recommendations")
            return None

        now = self._clock()
        scored = sorted(
            (score_article(a, profile, pattern, now) for a in candidates),
            key=lambda r: r.relevance_score,
            reverse=True,
        )[:limit]
        refined = await self.refine_with_ai(scored, profile, pattern)

        return UserRecommendations(
            articles=refined,
            suggested_topics=self.suggest_topics(profile),
            suggested_categories=await self.suggest_categories(profile),
            difficulty=profile.reading_level,
            reasoning=self.build_reasoning(profile, pattern),
            confidence=calculate_confidence(profile, pattern, len(candidates)),
        )

    async def analyze_behavior_pattern(self) -> BehaviorPattern:
        since = self._clock() - timedelta(days=BEHAVIOR_WINDOW_DAYS)
        activity = await self.activity.get_recent_activity(since=since, limit=BEHAVIOR_ACTIVITY_LIMIT)
        saved = await self.articles.get_saved_articles(limit=BEHAVIOR_SAVED_LIMIT)
        questions = await self.activity.get_recent_questions(limit=BEHAVIOR_QUESTIONS_LIMIT)
        return build_behavior_pattern(activity, saved, questions)

    async def get_candidate_articles(self, profile: UserProfile, pool_size: int) -> List[Dict[str, Any]]:
        """
        Unread articles from the top categories plus an exploration share
        from popular categories outside the profile.
        """
        read_ids = await self.activity.get_read_article_ids()
        top = profile.category_names
        candidates: List[Dict[str, Any]] = []

        if top:
            per_category = math.ceil(pool_size * RECOMMENDATION_WEIGHTS.TOP_CATEGORY_SHARE / len(top))
            for category in top:
                candidates.extend(
                    await self.articles.get_candidates(category, exclude_ids=read_ids, limit=per_category)
                )

        outside = await self.articles.get_popular_categories(limit=EXPLORATION_CATEGORIES, exclude=top)
        if outside:
            per_category = math.ceil(pool_size * RECOMMENDATION_WEIGHTS.EXPLORATION_SHARE / len(outside))
            for category in outside:
                candidates.extend(
                    await self.articles.get_candidates(category, exclude_ids=read_ids, limit=per_category)
                )

        unique: Dict[str, Dict[str, Any]] = {}
        for article in candidates:
            unique.setdefault(str(article["id"]), article)
        logger.debug(f"Collected {len(unique)} candidate articles")
        return list(unique.values())

    async def refine_with_ai(
        self,
        articles: List[RecommendedArticle],
        profile: UserProfile,
        pattern: BehaviorPattern,
    ) -> List[RecommendedArticle]:
        """
        Let the model re-rank and annotate the top slice.

        Any failure leaves the input order untouched.
        """
        if not articles or self.llm_client is None or not self.llm_client.is_enabled:
            return articles

        slice_size = RECOMMENDATION_WEIGHTS.AI_REFINEMENT_SLICE
        head, tail = articles[:slice_size], articles[slice_size:]
        listing = "\n".join(
            f'{i}. "{a.title}" - {a.category} ({a.read_time_minutes} min)' for i, a in enumerate(head, start=1)
        )
        prompt = f"""Refine these article recommendations for the reader below.

Reader:
- Reading level: {profile.reading_level.value}
- Preferred style: {profile.content_style.value}
- Main categories: {", ".join(profile.category_names[:3]) or "none"}
- Preferred depth: {pattern.content_depth_preference.value}
- Interaction style: {pattern.interaction_style.value}

Candidates:
{listing}

Return a JSON array ordered from best to worst fit:
[{{"index": 1, "personality_match": 0-100, "reasoning": "short reason", "tags": ["tag1", "tag2"]}}]"""

        try:
            model = None
            if self.model_selector is not None:
                model = (await self.model_selector.select_best_model(self._refinement_requirement())).name
            text = await self.llm_client.complete_text(
                prompt,
                system="You are a personalized content recommendation expert. Return valid JSON only.",
                model=model,
            )
            refinements = parse_json_response(text, [])
            return apply_refinements([a.model_copy(deep=True) for a in head], refinements) + tail
        except Exception as e:
            logger.warning(f"AI refinement failed, keeping base ranking: {e}")
            return articles

    def _refinement_requirement(self) -> TaskRequirement:
        return TaskRequirement(
            task_type=TaskType.ANALYSIS,
            complexity=TaskComplexity.MEDIUM,
            output_length=OutputLength.MEDIUM,
            language=self.language,
            quality=QualityLevel.STANDARD,
            urgency=Urgency.MEDIUM,
            context="personalized recommendations analysis",
        )

    @staticmethod
    def suggest_topics(profile: UserProfile) -> List[str]:
        topics = list(profile.preferred_topics[:5])
        for category in profile.category_names[:3]:
            topics.extend(CATEGORY_TOPICS.get(category, ()))
        return list(dict.fromkeys(topics))[:8]

    async def suggest_categories(self, profile: UserProfile) -> List[str]:
        return await self.articles.get_popular_categories(limit=5, exclude=profile.category_names)

    @staticmethod
    def build_reasoning(profile: UserProfile, pattern: BehaviorPattern) -> str:
        reasons = []
        if profile.reading_level == ReadingLevel.ADVANCED:
            reasons.append("advanced material matched to your reading level")
        if pattern.interaction_style == InteractionStyle.ACTIVE:
            reasons.append("articles that invite questions and reflection")
        if pattern.content_depth_preference == ContentDepth.DEEP:
            reasons.append("detailed, in-depth pieces")
        return ", ".join(reasons) or "Recommendations based on your preferences and activity"

    async def _fallback(self, limit: int) -> UserRecommendations:
        """Most recent N articles at fixed confidence."""
        try:
            recent = await self.articles.get_recent(limit=limit)
        except Exception as e:
            logger.error(f"Fallback recommendations unavailable: {e}")
            recent = []

        articles = [
            RecommendedArticle(
                id=str(a["id"]),
                title=a.get("title") or "",
                category=a.get("category") or "general",
                excerpt=a.get("excerpt") or (a.get("content") or "")[:200],
                read_time_minutes=a.get("read_time") or 5,
                personality_match=RECOMMENDATION_WEIGHTS.BASE_PERSONALITY_MATCH,
                relevance_score=50.0,
                reasoning=["basic recommendation"],
                tags=[a.get("category") or "general"],
            )
            for a in recent[:limit]
        ]

        if self.metrics_collector is not None:
            self.metrics_collector.record_recommendation_confidence(RECOMMENDATION_WEIGHTS.FALLBACK_CONFIDENCE)

        return UserRecommendations(
            articles=articles,
            suggested_topics=list(FALLBACK_TOPICS),
            suggested_categories=list(FALLBACK_CATEGORIES),
            difficulty=ReadingLevel.INTERMEDIATE,
            reasoning=FALLBACK_RECOMMENDATION_LABEL,
            confidence=RECOMMENDATION_WEIGHTS.FALLBACK_CONFIDENCE,
            is_fallback=True,
        )

    def _log_recommendations(self, user_id: str, recommendations: UserRecommendations) -> None:
        if self.metrics_collector is not None:
            self.metrics_collector.record_recommendation_confidence(recommendations.confidence)
        if self.side_channel is not None:
            self.side_channel.emit(
                "recommendations",
                user_id=user_id,
                article_ids=[a.id for a in recommendations.articles],
                confidence=recommendations.confidence,
                suggested_categories=recommendations.suggested_categories,
            )


__all__ = [
    "RecommendationEngine",
    "build_behavior_pattern",
    "score_article",
    "calculate_confidence",
    "apply_refinements",
]
