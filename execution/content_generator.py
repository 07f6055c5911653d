"""
Content Generator: Personalized Article Batch Orchestration

Generates a batch of articles tailored to the reader:

1. Reader profile (memoized by the PreferenceAnalyzer)
2. Best-effort document insights; any failure means "no insights"
3. GenerationPlan allocating the quota across top categories
4. Topic per slot: unused plan suggestions first, then synthesized
   topics, bounded attempts per slot
5. One generation call per topic on the selected backend, memoized 4h
6. Persistence with an insight record per article

Per-article failures are logged and skipped; the batch never aborts on
them. Successive generation calls are separated by a fixed pause.

Architectural Pattern: Pipeline with per-item isolation
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from loguru import logger

from config.constants import CACHE_LIMITS
from core.enums import (
    Difficulty,
    InsightType,
    Language,
    OutputLength,
    QualityLevel,
    TaskComplexity,
    TaskType,
    Urgency,
)
from core.exceptions import GenerationError, LLMNotConfiguredError, ValidationError
from core.models import ContentMix, GeneratedArticle, GenerationPlan, TaskRequirement, UserProfile, utc_now
from infrastructure.llm_client import parse_json_response

EXISTING_TITLES_LIMIT = 50
MAX_TOPIC_LENGTH = 80

_DIFFICULTY_COMPLEXITY = {
    Difficulty.BEGINNER: TaskComplexity.SIMPLE,
    Difficulty.INTERMEDIATE: TaskComplexity.MEDIUM,
    Difficulty.ADVANCED: TaskComplexity.COMPLEX,
}


class PersonalizedContentGenerator:
    """
    Personalized article generation engine.

    Usage:
        generator = PersonalizedContentGenerator(...)
        articles = await generator.generate_personalized_content(count=5)
    """

    def __init__(
        self,
        preference_analyzer: Any,
        content_planner: Any,
        model_selector: Any,
        llm_client: Any,
        article_repository: Any,
        insight_repository: Any,
        activity_repository: Any,
        cache_manager: Any,
        document_analyzer: Optional[Any] = None,
        metrics_collector: Optional[Any] = None,
        analytics: Optional[Any] = None,
        pause_seconds: float = 1.0,
        max_topic_attempts: int = 5,
        language: Language = Language.ENGLISH,
        temperature: float = 0.8,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.preference_analyzer = preference_analyzer
        self.planner = content_planner
        self.model_selector = model_selector
        self.llm = llm_client
        self.articles = article_repository
        self.insights = insight_repository
        self.activity = activity_repository
        self.cache = cache_manager
        self.document_analyzer = document_analyzer
        self.metrics = metrics_collector
        self.analytics = analytics
        self.pause_seconds = pause_seconds
        self.max_topic_attempts = max_topic_attempts
        self.language = language
        self.temperature = temperature
        self._sleep = sleep
        self._clock = clock

        logger.info("PersonalizedContentGenerator initialized")

    # =========================================================================
    # BATCH GENERATION
    # =========================================================================

    async def generate_personalized_content(self, count: int = 5) -> List[GeneratedArticle]:
        """
        Generate and persist ``count`` personalized articles.

        Args:
            count: Number of articles to attempt

        Returns:
            Persisted articles (may be fewer than ``count``)

        Raises:
            ValidationError: If count is negative
            LLMNotConfiguredError: If no text-generation backend is available
        """
        if count < 0:
            raise ValidationError("Article count cannot be negative", field="count", value=count)
        if count == 0:
            return []
        if self.llm is None or not self.llm.is_enabled:
            raise LLMNotConfiguredError("generation")

        started = time.perf_counter()
        logger.info(f"Starting personalized generation of {count} articles")

        profile: UserProfile = await self.preference_analyzer.analyze_user_profile()
        logger.info(
            f"Profile: {profile.reading_level.value} level, {profile.content_style.value} style"
        )

        content_mix, document_context = await self._collect_document_context(profile)
        plan: GenerationPlan = await self.planner.create_plan(profile, count, content_mix)
        logger.info(f"Plan covers {len(plan.allocation)} categories: {plan.allocation}")

        generated = await self._generate_articles(plan, profile, document_context)
        saved = await self._save_articles(generated, profile)

        duration = time.perf_counter() - started
        if self.metrics is not None:
            self.metrics.record_generation_batch(duration)
        if self.analytics is not None:
            self.analytics.track_performance(
                "content_generator",
                "generate_personalized_content",
                duration * 1000,
                True,
                {
                    "model_name": saved[0].model_name if saved else None,
                    "requested": count,
                    "generated": len(saved),
                },
            )

        logger.success(f"Generated and saved {len(saved)}/{count} articles in {duration:.1f}s")
        return saved

    async def generate_daily_content(self, count: int = 2) -> List[GeneratedArticle]:
        """Generate a small batch when the reader was active in the last 24h."""
        since = self._clock() - timedelta(hours=24)
        recent = await self.activity.count_since(since)
        if recent == 0:
            logger.info("No recent activity, skipping daily generation")
            return []

        articles = await self.generate_personalized_content(count)
        logger.success(f"Daily generation complete: {len(articles)} articles")
        return articles

    async def _collect_document_context(
        self, profile: UserProfile
    ) -> Tuple[Optional[ContentMix], Optional[Dict[str, Any]]]:
        if self.document_analyzer is None:
            return None, None

        try:
            insights = await self.document_analyzer.analyze_documents()
            if not insights:
                return None, None
            mix = await self.document_analyzer.generate_content_mix(insights, profile)
            await self.document_analyzer.save_document_insights(insights)
            logger.info(f"Document analysis completed: {len(insights)} documents")
            return mix, self.document_analyzer.summarize(insights, mix)
        except Exception as e:
            logger.warning(f"Document analysis failed, continuing without it: {e}")
            return None, None

    async def _generate_articles(
        self,
        plan: GenerationPlan,
        profile: UserProfile,
        document_context: Optional[Dict[str, Any]],
    ) -> List[GeneratedArticle]:
        personal_context = self.preference_analyzer.generate_personalized_context(profile, document_context)
        existing_titles = await self.articles.get_recent_titles(limit=EXISTING_TITLES_LIMIT)
        try:
            model = await self._select_model(self._article_requirement(plan))
        except Exception as e:
            logger.warning(f"Model selection failed, using provider default: {e}")
            model = None

        articles: List[GeneratedArticle] = []
        used_topics: Set[str] = set()
        calls = 0

        for category, slots in plan.allocation.items():
            logger.info(f"Creating {slots} articles for {category}")
            for _ in range(slots):
                topic = await self.choose_topic(category, plan, profile, used_topics)
                if topic is None:
                    logger.warning(f"Could not find a unique topic for {category}, skipping slot")
                    continue
                used_topics.add(topic)

                if calls:
                    await self._sleep(self.pause_seconds)
                calls += 1

                try:
                    article = await self.create_article(
                        topic, category, plan, personal_context, existing_titles, model
                    )
                except Exception as e:
                    logger.error(f"Failed to create article on '{topic}' in {category}: {e}")
                    if self.metrics is not None:
                        self.metrics.record_article_outcome(category, False)
                    continue

                articles.append(article)
                logger.info(f"Created: \"{article.title}\"")

        return articles

    # =========================================================================
    # TOPICS
    # =========================================================================

    async def choose_topic(
        self,
        category: str,
        plan: GenerationPlan,
        profile: UserProfile,
        used_topics: Set[str],
    ) -> Optional[str]:
        """
        Next unused plan topic, else a synthesized one.

        Bounded by ``max_topic_attempts``; returns None when every attempt
        yields an empty or already used topic.
        """
        for _ in range(self.max_topic_attempts):
            available = [t for t in plan.suggested_topics if t not in used_topics]
            topic = available[0] if available else await self.synthesize_topic(category, profile)
            if topic and topic not in used_topics:
                return topic
        return None

    async def synthesize_topic(self, category: str, profile: UserProfile) -> str:
        fallback = f"advanced {category}"
        requirement = TaskRequirement(
            task_type=TaskType.CREATIVE,
            complexity=TaskComplexity.SIMPLE,
            output_length=OutputLength.SHORT,
            language=self.language,
            quality=QualityLevel.DRAFT,
            urgency=Urgency.HIGH,
            context=f"topic generation for {category}",
        )
        prompt = f"""Suggest one new, interesting article topic in the category "{category}" for this reader:

Reading level: {profile.reading_level.value}
Preferred style: {profile.content_style.value}
Interests: {", ".join(profile.category_names[:3]) or category}

Return a single short sentence only (not JSON)."""

        try:
            model = await self._select_model(requirement)
            text = await self.llm.complete_text(
                prompt, system="You suggest interesting article topics. Return one topic only.", model=model
            )
        except Exception as e:
            logger.warning(f"Topic synthesis failed for {category}: {e}")
            return fallback

        topic = text.replace('"', "").replace("\n", " ").replace("\r", " ").strip()
        return topic[:MAX_TOPIC_LENGTH] or fallback

    # =========================================================================
    # SINGLE ARTICLE
    # =========================================================================

    async def create_article(
        self,
        topic: str,
        category: str,
        plan: GenerationPlan,
        personal_context: str,
        existing_titles: List[str],
        model: Optional[str] = None,
    ) -> GeneratedArticle:
        """
        Generate one article, reusing a cached article for the same request.

        Raises:
            GenerationError: If the model output has no usable content
        """
        cache_key = self.cache.generate_key(
            "generated_article",
            {
                "topic": topic.lower(),
                "category": category,
                "difficulty": plan.target_difficulty.value,
                "style": plan.content_style.value,
            },
        )
        cached = await self.cache.get(cache_key)
        if isinstance(cached, GeneratedArticle):
            logger.debug(f"Using cached article for '{topic}'")
            return cached.model_copy()

        prompt = f"""Write a high-quality personalized article on: "{topic}"

{personal_context}

## Article details:
- Category: {category}
- Target difficulty: {plan.target_difficulty.value}
- Content style: {plan.content_style.value}
- Reader persona: {plan.persona_description}

## Existing articles (do not duplicate):
{", ".join(existing_titles)[:500]}

Return JSON in this format:
{{
  "title": "engaging unique title (up to 60 characters)",
  "content": "full article, at least 400 words, structured with subheadings and practical points",
  "excerpt": "2-3 sentence summary",
  "tags": ["tag1", "tag2", "tag3"],
  "read_time": reading_time_in_minutes,
  "personality_match": fit_for_this_reader_0_to_100
}}"""

        text = await self.llm.complete_text(
            prompt,
            system="You are an expert writer of personalized articles. Return valid JSON only.",
            model=model,
            temperature=self.temperature,
        )
        parsed = parse_json_response(text, None)
        if not isinstance(parsed, dict) or not str(parsed.get("content") or "").strip():
            raise GenerationError(f"Model returned no usable article for '{topic}'", topic=topic)

        content = str(parsed["content"]).strip()
        read_time = parsed.get("read_time")
        match = parsed.get("personality_match")
        tags = parsed.get("tags")

        article = GeneratedArticle(
            title=str(parsed.get("title") or f"{topic}: a complete guide")[:200],
            content=content,
            excerpt=str(parsed.get("excerpt") or content[:200]),
            category=category,
            tags=[str(t) for t in tags] if isinstance(tags, list) else [topic, category],
            read_time_minutes=max(1, int(read_time)) if isinstance(read_time, (int, float)) else 5,
            difficulty=plan.target_difficulty,
            personality_match=min(100.0, max(0.0, float(match))) if isinstance(match, (int, float)) else 75.0,
            topic=topic,
            model_name=model,
        )

        await self.cache.set(cache_key, article, ttl=CACHE_LIMITS.GENERATED_ARTICLE_TTL)
        return article

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _save_articles(
        self, articles: List[GeneratedArticle], profile: UserProfile
    ) -> List[GeneratedArticle]:
        saved: List[GeneratedArticle] = []
        top_category = profile.category_names[0] if profile.top_categories else None

        for article in articles:
            try:
                record = await self.articles.create(article)
                await self.insights.create(
                    InsightType.GENERATED_CONTENT,
                    title=f"Generated: {article.title}",
                    content=f"Personalized article with {article.personality_match:.0f}% personality match",
                    metadata={
                        "article_id": record["id"],
                        "difficulty": article.difficulty.value,
                        "personality_match": article.personality_match,
                        "tags": article.tags,
                        "generated_for": {
                            "reading_level": profile.reading_level.value,
                            "content_style": profile.content_style.value,
                            "top_category": top_category,
                        },
                    },
                )
            except Exception as e:
                logger.error(f"Failed to save article \"{article.title}\": {e}")
                if self.metrics is not None:
                    self.metrics.record_article_outcome(article.category, False)
                continue

            if self.metrics is not None:
                self.metrics.record_article_outcome(article.category, True)
            saved.append(article.model_copy(update={"id": record["id"]}))

        return saved

    # =========================================================================
    # MODEL SELECTION
    # =========================================================================

    def _article_requirement(self, plan: GenerationPlan) -> TaskRequirement:
        return TaskRequirement(
            task_type=TaskType.CONTENT_GENERATION,
            complexity=_DIFFICULTY_COMPLEXITY[plan.target_difficulty],
            output_length=OutputLength.LONG,
            language=self.language,
            quality=QualityLevel.PREMIUM,
            urgency=Urgency.LOW,
            context=f"{plan.content_style.value} content for {plan.persona_description}",
        )

    async def _select_model(self, requirement: TaskRequirement) -> Optional[str]:
        if self.model_selector is None:
            return None
        descriptor = await self.model_selector.select_best_model(requirement)
        return descriptor.name


__all__ = ["PersonalizedContentGenerator"]
