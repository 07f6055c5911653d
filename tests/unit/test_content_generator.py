"""
Unit tests for PersonalizedContentGenerator.

Tests batch generation end to end against mocked repositories and a
scripted model: topic choice, pacing, per-article isolation,
persistence and the daily activity gate.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from core.enums import InsightType
from core.exceptions import LLMNotConfiguredError, ValidationError
from core.models import ContentMix, DocumentInsight
from execution.content_generator import PersonalizedContentGenerator
from execution.content_planner import ContentPlanner
from intelligence.document_analyzer import DocumentAnalyzer
from intelligence.preference_analyzer import PreferenceAnalyzer
from optimization.model_selector import ModelSelector

ARTICLE_REPLY = json.dumps(
    {
        "title": "A practical guide",
        "content": "Body of the article.",
        "excerpt": "Short summary.",
        "tags": ["guide"],
        "read_time": 7,
        "personality_match": 88,
    }
)


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def is_topic_prompt(messages):
    return messages[-1]["content"].startswith("Suggest one new")


def article_only(messages):
    return ARTICLE_REPLY


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def profile(profile_builder):
    return profile_builder([("technology", 0.6), ("health", 0.4)], topics=["t1", "t2", "t3", "t4", "t5"])


@pytest.fixture
def preference_analyzer(profile):
    mock = Mock(spec=PreferenceAnalyzer)
    mock.analyze_user_profile = AsyncMock(return_value=profile)
    mock.generate_personalized_context = Mock(return_value="Reader context")
    return mock


@pytest.fixture
def build_generator(
    preference_analyzer, article_repository, insight_repository, activity_repository, cache_manager, fake_sleep, date_clock
):
    def build(llm, **kwargs):
        options = {
            "preference_analyzer": preference_analyzer,
            "content_planner": ContentPlanner(cache_manager),
            "model_selector": ModelSelector(),
            "llm_client": llm,
            "article_repository": article_repository,
            "insight_repository": insight_repository,
            "activity_repository": activity_repository,
            "cache_manager": cache_manager,
            "sleep": fake_sleep,
            "clock": date_clock,
        }
        options.update(kwargs)
        return PersonalizedContentGenerator(**options)

    return build


@pytest.mark.unit
class TestBatchGeneration:
    @pytest.mark.asyncio
    async def test_generates_and_persists_allocation(
        self, build_generator, scripted_llm, insight_repository, fake_sleep
    ):
        llm = scripted_llm([article_only])
        generator = build_generator(llm)

        articles = await generator.generate_personalized_content(count=5)

        assert [a.category for a in articles] == ["technology"] * 3 + ["health"] * 2
        assert [a.topic for a in articles] == ["t1", "t2", "t3", "t4", "t5"]
        assert [a.id for a in articles] == [f"article-{i}" for i in range(1, 6)]
        assert articles[0].read_time_minutes == 7
        assert articles[0].personality_match == 88
        assert articles[0].model_name == llm.calls[0]["model"]
        assert articles[0].model_name is not None

        # No pause before the first call
        assert fake_sleep.delays == [1.0] * 4

        insight = insight_repository.created[0]
        assert insight["type"] == InsightType.GENERATED_CONTENT
        assert insight["metadata"]["article_id"] == "article-1"
        assert insight["metadata"]["generated_for"]["top_category"] == "technology"

    @pytest.mark.asyncio
    async def test_negative_count_rejected(self, build_generator, scripted_llm):
        with pytest.raises(ValidationError):
            await build_generator(scripted_llm()).generate_personalized_content(count=-1)

    @pytest.mark.asyncio
    async def test_zero_count_does_nothing(self, build_generator, scripted_llm, preference_analyzer):
        assert await build_generator(scripted_llm()).generate_personalized_content(count=0) == []
        preference_analyzer.analyze_user_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_generation_backend(self, build_generator, scripted_llm):
        with pytest.raises(LLMNotConfiguredError):
            await build_generator(None).generate_personalized_content(count=1)
        with pytest.raises(LLMNotConfiguredError):
            await build_generator(scripted_llm(enabled=False)).generate_personalized_content(count=1)

    @pytest.mark.asyncio
    async def test_failed_article_is_skipped(self, build_generator, scripted_llm, fake_sleep):
        def reply(messages):
            return "not an article" if '"t2"' in messages[-1]["content"] else ARTICLE_REPLY

        articles = await build_generator(scripted_llm([reply])).generate_personalized_content(count=5)

        assert [a.topic for a in articles] == ["t1", "t3", "t4", "t5"]
        assert len(fake_sleep.delays) == 4

    @pytest.mark.asyncio
    async def test_save_failure_is_skipped(self, build_generator, scripted_llm, article_repository):
        article_repository.create.side_effect = RuntimeError("disk full")

        articles = await build_generator(scripted_llm([article_only])).generate_personalized_content(count=2)

        assert articles == []

    @pytest.mark.asyncio
    async def test_cached_articles_reused(self, build_generator, scripted_llm):
        llm = scripted_llm([article_only])
        generator = build_generator(llm)

        await generator.generate_personalized_content(count=5)
        again = await generator.generate_personalized_content(count=5)

        assert len(again) == 5
        assert len(llm.calls) == 5

    @pytest.mark.asyncio
    async def test_batch_tracked_in_analytics(self, build_generator, scripted_llm, analytics):
        generator = build_generator(scripted_llm([article_only]), analytics=analytics)

        await generator.generate_personalized_content(count=2)

        sample = analytics.get_recent_samples("content_generator", "generate_personalized_content")[0]
        assert sample.metadata["requested"] == 2
        assert sample.metadata["generated"] == 2


@pytest.mark.unit
class TestTopicSelection:
    @pytest.fixture
    def preference_analyzer(self, profile_builder):
        mock = Mock(spec=PreferenceAnalyzer)
        mock.analyze_user_profile = AsyncMock(return_value=profile_builder([("knitting", 1.0)]))
        mock.generate_personalized_context = Mock(return_value="Reader context")
        return mock

    @pytest.mark.asyncio
    async def test_topic_attempts_are_bounded(self, build_generator, scripted_llm):
        def reply(messages):
            return "Same topic" if is_topic_prompt(messages) else ARTICLE_REPLY

        llm = scripted_llm([reply])

        articles = await build_generator(llm).generate_personalized_content(count=2)

        assert [a.topic for a in articles] == ["Same topic"]
        # One accepted synthesis, then five rejected duplicates
        assert sum(1 for p in llm.prompts if p.startswith("Suggest one new")) == 6

    @pytest.mark.asyncio
    async def test_synthesis_failure_uses_fallback_topic(self, build_generator, scripted_llm):
        def reply(messages):
            if is_topic_prompt(messages):
                raise RuntimeError("provider down")
            return ARTICLE_REPLY

        articles = await build_generator(scripted_llm([reply])).generate_personalized_content(count=1)

        assert articles[0].topic == "advanced knitting"

    @pytest.mark.asyncio
    async def test_synthesized_topic_is_cleaned(self, build_generator, scripted_llm):
        def reply(messages):
            return '"Wool\nblends"' if is_topic_prompt(messages) else ARTICLE_REPLY

        articles = await build_generator(scripted_llm([reply])).generate_personalized_content(count=1)

        assert articles[0].topic == "Wool blends"


@pytest.mark.unit
class TestDocumentContext:
    @pytest.fixture
    def document_analyzer(self):
        mock = Mock(spec=DocumentAnalyzer)
        mock.analyze_documents = AsyncMock(return_value=[DocumentInsight(document_id="d1", title="Notes")])
        mock.generate_content_mix = AsyncMock(return_value=ContentMix(suggested_topics=["doc topic"]))
        mock.save_document_insights = AsyncMock(return_value=1)
        mock.summarize = Mock(return_value={"main_topics": ["doc topic"]})
        return mock

    @pytest.mark.asyncio
    async def test_document_insights_feed_context(
        self, build_generator, scripted_llm, document_analyzer, preference_analyzer, profile
    ):
        generator = build_generator(scripted_llm([article_only]), document_analyzer=document_analyzer)

        await generator.generate_personalized_content(count=1)

        document_analyzer.save_document_insights.assert_awaited_once()
        preference_analyzer.generate_personalized_context.assert_called_once_with(
            profile, {"main_topics": ["doc topic"]}
        )

    @pytest.mark.asyncio
    async def test_document_failure_is_not_fatal(
        self, build_generator, scripted_llm, document_analyzer, preference_analyzer, profile
    ):
        document_analyzer.analyze_documents.side_effect = RuntimeError("listing failed")
        generator = build_generator(scripted_llm([article_only]), document_analyzer=document_analyzer)

        articles = await generator.generate_personalized_content(count=1)

        assert len(articles) == 1
        preference_analyzer.generate_personalized_context.assert_called_once_with(profile, None)


@pytest.mark.unit
class TestDailyContent:
    @pytest.mark.asyncio
    async def test_skipped_without_recent_activity(
        self, build_generator, scripted_llm, activity_repository, preference_analyzer, date_clock
    ):
        articles = await build_generator(scripted_llm([article_only])).generate_daily_content()

        assert articles == []
        activity_repository.count_since.assert_awaited_once_with(date_clock.now - timedelta(hours=24))
        preference_analyzer.analyze_user_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_generates_when_reader_was_active(self, build_generator, scripted_llm, activity_repository):
        activity_repository.count_since.return_value = 3

        articles = await build_generator(scripted_llm([article_only])).generate_daily_content()

        assert len(articles) == 2
