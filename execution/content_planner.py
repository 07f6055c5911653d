"""
Content Planner - Quota Allocation Across Reader Interests
===========================================================

The ContentPlanner turns a reader profile into a GenerationPlan by:
- Allocating the requested article count across the top categories in
  proportion to their scores (largest remainder, floor of one each)
- Collecting topic suggestions from the profile, document insights and
  category seeds
- Asking the planning model for a persona, difficulty and topics when a
  model is available
- Memoizing plans for an hour under a profile-derived key

Architecture: Orchestration pattern with dependency injection
"""

import math
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from config.constants import CACHE_LIMITS, CATEGORY_TOPICS
from core.enums import (
    ContentStyle,
    Difficulty,
    Language,
    OutputLength,
    QualityLevel,
    ReadingLevel,
    TaskComplexity,
    TaskType,
    Urgency,
)
from core.exceptions import ValidationError
from core.models import CategoryScore, ContentMix, GenerationPlan, TaskRequirement, UserProfile
from infrastructure.llm_client import parse_json_response

MAX_PLAN_TOPICS = 12
BASIC_PERSONA = "Curious learner focused on personal growth"

_LEVEL_COMPLEXITY = {
    ReadingLevel.BEGINNER: TaskComplexity.SIMPLE,
    ReadingLevel.INTERMEDIATE: TaskComplexity.MEDIUM,
    ReadingLevel.ADVANCED: TaskComplexity.COMPLEX,
}


def allocate_articles(
    categories: Sequence[CategoryScore],
    count: int,
    max_categories: int = 5,
    default_category: str = "general",
) -> Dict[str, int]:
    """
    Split ``count`` articles across categories proportionally to score.

    The top min(count, max_categories) categories each get one article;
    the rest is shared by largest remainder, ties going to the earlier
    (higher scored) category. All-zero scores share equally.

    Args:
        categories: Categories ordered by descending score
        count: Total number of articles
        max_categories: Upper bound on included categories
        default_category: Receives everything when there are no categories

    Returns:
        Ordered mapping category -> article count summing to ``count``

    Raises:
        ValidationError: If count is negative
    """
    if count < 0:
        raise ValidationError("Article count cannot be negative", field="count", value=count)
    if count == 0:
        return {}
    if not categories:
        return {default_category: count}

    included = list(categories)[: min(count, max_categories)]
    weights = [c.score for c in included]
    total_weight = sum(weights)
    if total_weight <= 0:
        weights = [1.0] * len(included)
        total_weight = float(len(included))

    remaining = count - len(included)
    quotas = [remaining * w / total_weight for w in weights]
    shares = [math.floor(q) for q in quotas]

    leftover = remaining - sum(shares)
    by_remainder = sorted(range(len(included)), key=lambda i: (-(quotas[i] - shares[i]), i))
    for i in by_remainder[:leftover]:
        shares[i] += 1

    return {c.category: 1 + share for c, share in zip(included, shares)}


def collect_topics(profile: UserProfile, content_mix: Optional[ContentMix] = None) -> List[str]:
    """Profile topics, document topics, then category seeds; deduplicated."""
    topics = list(profile.preferred_topics[:8])
    if content_mix is not None:
        topics.extend(content_mix.suggested_topics)
    for category in profile.category_names:
        topics.extend(CATEGORY_TOPICS.get(category, ()))
    return list(dict.fromkeys(t.strip() for t in topics if t and t.strip()))[:MAX_PLAN_TOPICS]


class ContentPlanner:
    """
    Generation plan builder.

    The allocation is always computed locally; the planning model only
    contributes persona, difficulty, style and extra topics.
    """

    def __init__(
        self,
        cache_manager: Any,
        model_selector: Optional[Any] = None,
        llm_client: Optional[Any] = None,
        max_categories: int = 5,
        default_category: str = "general",
        language: Language = Language.ENGLISH,
        temperature: float = 0.3,
    ):
        self.cache = cache_manager
        self.model_selector = model_selector
        self.llm_client = llm_client
        self.max_categories = max_categories
        self.default_category = default_category
        self.language = language
        self.temperature = temperature

    async def create_plan(
        self,
        profile: UserProfile,
        count: int,
        content_mix: Optional[ContentMix] = None,
    ) -> GenerationPlan:
        """
        Build (or return the cached) plan for ``count`` articles.

        Args:
            profile: Reader profile
            count: Total articles
            content_mix: Optional document-derived suggestions

        Returns:
            GenerationPlan whose allocation sums to ``count``
        """
        allocation = allocate_articles(
            profile.top_categories, count, self.max_categories, self.default_category
        )

        cache_key = self.cache.generate_key(
            "content_plan",
            {
                "reading_level": profile.reading_level.value,
                "content_style": profile.content_style.value,
                "top_categories": [
                    (c.category, c.score) for c in profile.top_categories[: self.max_categories]
                ],
                "allocation": allocation,
                "total": count,
                "document_topics": content_mix.suggested_topics[:5] if content_mix else [],
            },
        )
        cached = await self.cache.get(cache_key)
        if isinstance(cached, GenerationPlan):
            logger.debug("Using cached content plan")
            return cached

        plan = self.create_basic_plan(profile, count, content_mix, allocation)
        if count > 0 and self.llm_client is not None and self.llm_client.is_enabled:
            plan = await self._enrich_with_ai(plan, profile, content_mix)

        await self.cache.set(cache_key, plan, ttl=CACHE_LIMITS.GENERATION_PLAN_TTL)
        logger.info(f"Content plan created: {plan.allocation}")
        return plan

    def create_basic_plan(
        self,
        profile: UserProfile,
        count: int,
        content_mix: Optional[ContentMix] = None,
        allocation: Optional[Dict[str, int]] = None,
    ) -> GenerationPlan:
        if allocation is None:
            allocation = allocate_articles(
                profile.top_categories, count, self.max_categories, self.default_category
            )
        return GenerationPlan(
            total_articles=count,
            allocation=allocation,
            suggested_topics=collect_topics(profile, content_mix),
            target_difficulty=Difficulty(profile.reading_level.value),
            content_style=profile.content_style,
            persona_description=BASIC_PERSONA,
        )

    async def _enrich_with_ai(
        self, plan: GenerationPlan, profile: UserProfile, content_mix: Optional[ContentMix]
    ) -> GenerationPlan:
        categories = ", ".join(
            f"{c.category} ({round(c.score * 100)}%)" for c in profile.top_categories
        ) or "none yet"
        documents = ""
        if content_mix is not None and not content_mix.is_empty:
            documents = f"""
Personal documents:
- Suggested topics: {", ".join(content_mix.suggested_topics)}
- Recommended categories: {", ".join(content_mix.recommended_categories)}
"""

        prompt = f"""Create a personalized content plan.

Reader profile:
- Reading level: {profile.reading_level.value}
- Preferred style: {profile.content_style.value}
- Main interests: {categories}
- Reading time: {profile.interaction_patterns.reading_time.value}
- Preferred topics: {", ".join(profile.preferred_topics[:8]) or "none yet"}
{documents}
Articles per category (fixed): {plan.allocation}

Return JSON in this format:
{{
  "suggested_topics": ["specific topic 1", "specific topic 2", "specific topic 3"],
  "target_difficulty": "beginner/intermediate/advanced",
  "content_style": "practical/theoretical/mixed",
  "persona_description": "one sentence describing the reader as a learner"
}}"""

        try:
            model = None
            if self.model_selector is not None:
                requirement = TaskRequirement(
                    task_type=TaskType.CONTENT_GENERATION,
                    complexity=_LEVEL_COMPLEXITY[profile.reading_level],
                    output_length=OutputLength.MEDIUM,
                    language=self.language,
                    quality=QualityLevel.STANDARD,
                    urgency=Urgency.MEDIUM,
                    context="content planning educational",
                )
                model = (await self.model_selector.select_best_model(requirement)).name
            text = await self.llm_client.complete_text(
                prompt,
                system="You are an expert content planner. Return valid JSON only.",
                model=model,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.warning(f"Content planning model failed, using basic plan: {e}")
            return plan

        parsed = parse_json_response(text, None)
        if not isinstance(parsed, dict):
            return plan

        topics = [str(t) for t in parsed.get("suggested_topics") or [] if t]
        update: Dict[str, Any] = {
            "suggested_topics": list(dict.fromkeys(topics + plan.suggested_topics))[:MAX_PLAN_TOPICS],
        }
        if parsed.get("persona_description"):
            update["persona_description"] = str(parsed["persona_description"])
        if parsed.get("target_difficulty") in {d.value for d in Difficulty}:
            update["target_difficulty"] = Difficulty(parsed["target_difficulty"])
        if parsed.get("content_style") in {s.value for s in ContentStyle}:
            update["content_style"] = ContentStyle(parsed["content_style"])

        return plan.model_copy(update=update)


__all__ = ["ContentPlanner", "allocate_articles", "collect_topics"]
