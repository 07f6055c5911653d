"""
Unit tests for ContentPlanner.

Tests the proportional quota allocation, topic collection and plan
creation with and without the planning model, without real LLM calls.
"""

import pytest

from core.enums import ContentStyle, Difficulty, ReadingLevel
from core.exceptions import ValidationError
from core.models import CategoryScore, ContentMix
from execution.content_planner import BASIC_PERSONA, ContentPlanner, allocate_articles, collect_topics
from optimization.model_selector import ModelSelector


def scores(*pairs):
    return [CategoryScore(category=c, score=s) for c, s in pairs]


@pytest.mark.unit
class TestAllocation:
    def test_proportional_split_with_largest_remainder(self):
        allocation = allocate_articles(scores(("a", 0.5), ("b", 0.3), ("c", 0.2)), 10)

        assert allocation == {"a": 5, "b": 3, "c": 2}
        assert list(allocation) == ["a", "b", "c"]

    def test_every_included_category_gets_one(self):
        allocation = allocate_articles(scores(("a", 0.9), ("b", 0.05), ("c", 0.05)), 4)

        assert all(n >= 1 for n in allocation.values())
        assert sum(allocation.values()) == 4

    def test_small_count_limits_categories(self):
        assert allocate_articles(scores(("a", 0.5), ("b", 0.3), ("c", 0.2)), 2) == {"a": 1, "b": 1}

    def test_max_categories_respected(self):
        allocation = allocate_articles(scores(("a", 0.4), ("b", 0.3), ("c", 0.3)), 10, max_categories=2)
        assert list(allocation) == ["a", "b"]
        assert sum(allocation.values()) == 10

    def test_ties_favor_earlier_category(self):
        assert allocate_articles(scores(("a", 0.5), ("b", 0.5)), 3) == {"a": 2, "b": 1}

    def test_zero_scores_share_equally(self):
        assert allocate_articles(scores(("a", 0.0), ("b", 0.0)), 4) == {"a": 2, "b": 2}

    def test_no_categories_uses_default(self):
        assert allocate_articles([], 3) == {"general": 3}
        assert allocate_articles([], 3, default_category="misc") == {"misc": 3}

    def test_zero_count(self):
        assert allocate_articles(scores(("a", 1.0)), 0) == {}

    def test_negative_count_rejected(self):
        with pytest.raises(ValidationError):
            allocate_articles(scores(("a", 1.0)), -1)


@pytest.mark.unit
class TestTopics:
    def test_profile_documents_then_category_seeds(self, profile_builder):
        profile = profile_builder([("technology", 1.0)], topics=["python"])
        mix = ContentMix(suggested_topics=["gardening", "python"])

        assert collect_topics(profile, mix) == [
            "python",
            "gardening",
            "artificial intelligence",
            "software architecture",
            "cybersecurity",
        ]

    def test_unknown_category_adds_nothing(self, profile_builder):
        assert collect_topics(profile_builder([("knitting", 1.0)])) == []


@pytest.mark.unit
class TestContentPlanner:
    @pytest.fixture
    def profile(self, profile_builder):
        return profile_builder(
            [("technology", 0.6), ("health", 0.4)], reading_level=ReadingLevel.BEGINNER
        )

    @pytest.mark.asyncio
    async def test_basic_plan_without_model(self, cache_manager, profile):
        planner = ContentPlanner(cache_manager)

        plan = await planner.create_plan(profile, 5)

        assert plan.total_articles == 5
        assert plan.allocation == {"technology": 3, "health": 2}
        assert plan.target_difficulty == Difficulty.BEGINNER
        assert plan.persona_description == BASIC_PERSONA

    @pytest.mark.asyncio
    async def test_plan_memoized(self, cache_manager, profile, scripted_llm):
        llm = scripted_llm(['{"persona_description": "Tinkerer"}'])
        planner = ContentPlanner(cache_manager, llm_client=llm)

        first = await planner.create_plan(profile, 5)
        second = await planner.create_plan(profile, 5)

        assert first is second
        assert len(llm.calls) == 1

    @pytest.mark.asyncio
    async def test_different_count_is_a_new_plan(self, cache_manager, profile):
        planner = ContentPlanner(cache_manager)

        small = await planner.create_plan(profile, 2)
        large = await planner.create_plan(profile, 6)

        assert sum(small.allocation.values()) == 2
        assert sum(large.allocation.values()) == 6

    @pytest.mark.asyncio
    async def test_changed_scores_are_a_new_plan(self, cache_manager, profile_builder):
        planner = ContentPlanner(cache_manager)

        first = await planner.create_plan(profile_builder([("technology", 0.6), ("science", 0.4)]), 10)
        second = await planner.create_plan(profile_builder([("technology", 0.1), ("science", 0.1)]), 10)

        assert first.allocation == {"technology": 6, "science": 4}
        assert second.allocation == {"technology": 5, "science": 5}

    @pytest.mark.asyncio
    async def test_categories_beyond_third_are_planned(self, cache_manager, profile_builder):
        planner = ContentPlanner(cache_manager)
        base = [("technology", 0.4), ("science", 0.3), ("health", 0.2)]

        await planner.create_plan(profile_builder(base), 4)
        plan = await planner.create_plan(profile_builder(base + [("art", 0.1)]), 4)

        assert plan.allocation == {"technology": 1, "science": 1, "health": 1, "art": 1}

    @pytest.mark.asyncio
    async def test_model_enriches_but_never_allocates(self, cache_manager, profile, scripted_llm):
        llm = scripted_llm(
            [
                '```json\n{"suggested_topics": ["quantum basics"], "target_difficulty": "advanced", '
                '"content_style": "practical", "persona_description": "An engineer", '
                '"allocation": {"cooking": 99}}\n```'
            ]
        )
        planner = ContentPlanner(cache_manager, model_selector=ModelSelector(), llm_client=llm)

        plan = await planner.create_plan(profile, 5)

        assert plan.allocation == {"technology": 3, "health": 2}
        assert plan.suggested_topics[0] == "quantum basics"
        assert plan.target_difficulty == Difficulty.ADVANCED
        assert plan.content_style == ContentStyle.PRACTICAL
        assert plan.persona_description == "An engineer"
        assert llm.calls[0]["model"] is not None
        assert llm.calls[0]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_invalid_enum_values_ignored(self, cache_manager, profile, scripted_llm):
        llm = scripted_llm(['{"target_difficulty": "expert", "content_style": "poetic"}'])
        planner = ContentPlanner(cache_manager, llm_client=llm)

        plan = await planner.create_plan(profile, 5)

        assert plan.target_difficulty == Difficulty.BEGINNER
        assert plan.content_style == ContentStyle.MIXED

    @pytest.mark.asyncio
    async def test_model_failure_keeps_basic_plan(self, cache_manager, profile, scripted_llm):
        planner = ContentPlanner(cache_manager, llm_client=scripted_llm([RuntimeError("timeout")]))

        plan = await planner.create_plan(profile, 5)

        assert plan.persona_description == BASIC_PERSONA
        assert plan.allocation == {"technology": 3, "health": 2}

    @pytest.mark.asyncio
    async def test_unparseable_reply_keeps_basic_plan(self, cache_manager, profile, scripted_llm):
        planner = ContentPlanner(cache_manager, llm_client=scripted_llm(["no plan today"]))

        plan = await planner.create_plan(profile, 5)

        assert plan.persona_description == BASIC_PERSONA

    @pytest.mark.asyncio
    async def test_disabled_model_not_called(self, cache_manager, profile, scripted_llm):
        llm = scripted_llm(enabled=False)
        planner = ContentPlanner(cache_manager, llm_client=llm)

        await planner.create_plan(profile, 5)

        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_zero_count_plan(self, cache_manager, profile, scripted_llm):
        llm = scripted_llm()
        planner = ContentPlanner(cache_manager, llm_client=llm)

        plan = await planner.create_plan(profile, 0)

        assert plan.allocation == {}
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_negative_count_rejected(self, cache_manager, profile):
        with pytest.raises(ValidationError):
            await ContentPlanner(cache_manager).create_plan(profile, -2)
