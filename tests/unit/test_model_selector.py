"""
Unit tests for ModelSelector.

Tests the individual scoring factors, deterministic ranking over the
default catalog, catalog validation, memoization and selection logging.
"""

from unittest.mock import Mock

import pytest

from core.enums import (
    ComplexityClass,
    Language,
    OutputLength,
    QualityLevel,
    SpeedClass,
    TaskComplexity,
    TaskType,
    Urgency,
)
from core.exceptions import ValidationError
from core.models import TaskRequirement
from infrastructure.side_channel import SideChannel
from optimization.model_selector import (
    DEFAULT_MODEL_CATALOG,
    ModelDescriptor,
    ModelSelector,
    language_score,
    output_length_score,
    rank_models,
    score_model,
    urgency_score,
    validate_catalog,
)

HEAVY, LIGHT, CREATIVE = DEFAULT_MODEL_CATALOG


def descriptor(name="m", speed=SpeedClass.MEDIUM, tokens=4096, languages=(Language.ENGLISH,), **kwargs):
    return ModelDescriptor(
        name=name,
        strengths=frozenset(kwargs.pop("strengths", ())),
        weaknesses=frozenset(kwargs.pop("weaknesses", ())),
        max_output_tokens=tokens,
        speed_class=speed,
        complexity_class=kwargs.pop("complexity", ComplexityClass.MEDIUM),
        supported_languages=frozenset(languages),
        **kwargs,
    )


@pytest.fixture
def premium_requirement():
    return TaskRequirement(
        task_type=TaskType.CONTENT_GENERATION,
        complexity=TaskComplexity.COMPLEX,
        quality=QualityLevel.PREMIUM,
        urgency=Urgency.LOW,
    )


@pytest.mark.unit
class TestScoring:
    def test_premium_content_scores(self, premium_requirement):
        assert score_model(HEAVY, premium_requirement) == 150
        assert score_model(CREATIVE, premium_requirement) == 100
        assert score_model(LIGHT, premium_requirement) == 40

    def test_ranking_selects_heavy_reasoning_model(self, premium_requirement):
        ranked = rank_models(DEFAULT_MODEL_CATALOG, premium_requirement)
        assert [m.name for m, _ in ranked] == [HEAVY.name, CREATIVE.name, LIGHT.name]

    def test_ties_keep_catalog_order(self):
        first, second = descriptor("first"), descriptor("second")
        requirement = TaskRequirement(task_type=TaskType.CODING)

        ranked = rank_models([first, second], requirement)

        assert ranked[0][0].name == "first"

    def test_urgency_bonuses_stack(self):
        fast, slow = descriptor(speed=SpeedClass.FAST), descriptor(speed=SpeedClass.SLOW)

        assert urgency_score(fast, Urgency.HIGH) == 45
        assert urgency_score(slow, Urgency.LOW) == 35
        assert urgency_score(fast, Urgency.LOW) == 5

    def test_output_length_tiers(self):
        requirement = TaskRequirement(task_type=TaskType.ANALYSIS, output_length=OutputLength.LONG)

        assert output_length_score(descriptor(tokens=8000), requirement) == 20
        assert output_length_score(descriptor(tokens=5600), requirement) == 10
        assert output_length_score(descriptor(tokens=1000), requirement) == -10

    def test_language_tiers(self):
        bilingual = descriptor(languages=(Language.ENGLISH, Language.HEBREW))
        english = descriptor(languages=(Language.ENGLISH,))

        assert language_score(bilingual, Language.HEBREW) == 25
        assert language_score(bilingual, Language.MIXED) == 20
        assert language_score(english, Language.HEBREW) == 5
        assert language_score(english, Language.MIXED) == 0

    def test_context_specialties_add_points(self):
        model = descriptor(specialties=frozenset({"creative_content", "narrative"}))
        plain = TaskRequirement(task_type=TaskType.CREATIVE)
        contextual = TaskRequirement(task_type=TaskType.CREATIVE, context="narrative creative content")

        assert score_model(model, contextual) - score_model(model, plain) == 30

    def test_score_never_negative(self):
        weak = descriptor(tokens=10, complexity=ComplexityClass.LIGHT, languages=(Language.HEBREW,))
        requirement = TaskRequirement(
            task_type=TaskType.CODING,
            complexity=TaskComplexity.COMPLEX,
            output_length=OutputLength.LONG,
            language=Language.ENGLISH,
        )
        assert score_model(weak, requirement) >= 0


@pytest.mark.unit
class TestCatalogValidation:
    def test_empty_catalog_rejected(self):
        with pytest.raises(ValidationError):
            validate_catalog([])

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValidationError):
            validate_catalog([descriptor("a"), descriptor("a")])

    def test_invalid_descriptor_rejected(self):
        with pytest.raises(ValidationError):
            descriptor(tokens=0)
        with pytest.raises(ValidationError):
            descriptor(strengths={"x"}, weaknesses={"x"})

    def test_register_model(self):
        selector = ModelSelector()
        selector.register_model(descriptor("new"))

        assert selector.catalog[-1].name == "new"
        with pytest.raises(ValidationError):
            selector.register_model(descriptor("new"))


@pytest.mark.unit
class TestModelSelector:
    @pytest.fixture
    def side_channel(self):
        mock = Mock(spec=SideChannel)
        mock.emit = Mock(return_value=True)
        return mock

    @pytest.fixture
    def selector(self, cache_manager, side_channel, metrics):
        return ModelSelector(cache_manager=cache_manager, side_channel=side_channel, metrics_collector=metrics)

    @pytest.mark.asyncio
    async def test_select_best_model(self, selector, premium_requirement):
        selected = await selector.select_best_model(premium_requirement)
        assert selected.name == HEAVY.name

    @pytest.mark.asyncio
    async def test_selection_is_memoized(self, selector, side_channel, premium_requirement):
        await selector.select_best_model(premium_requirement)
        await selector.select_best_model(premium_requirement)

        # Only the computed selection is logged
        assert side_channel.emit.call_count == 1
        assert selector.get_selection_statistics()["total_selections"] == 1

    @pytest.mark.asyncio
    async def test_free_text_context_stays_in_content_pool(self, selector, cache_manager):
        requirement = TaskRequirement(task_type=TaskType.ANALYSIS, context="summarize the user_profile notes")

        await selector.select_best_model(requirement)

        pools = cache_manager.get_statistics()["pools"]
        assert pools["profile"]["sets"] == 0
        assert pools["content"]["sets"] == 1

    @pytest.mark.asyncio
    async def test_selection_logged_to_side_channel(self, selector, side_channel, premium_requirement):
        await selector.select_best_model(premium_requirement)

        event, = side_channel.emit.call_args.args
        payload = side_channel.emit.call_args.kwargs
        assert event == "model_selection"
        assert payload["selected_model"] == HEAVY.name
        assert payload["score"] == 150
        assert [a["name"] for a in payload["alternatives"]] == [CREATIVE.name, LIGHT.name]

    @pytest.mark.asyncio
    async def test_recommendation_lists_alternatives(self, selector, premium_requirement):
        recommendation = await selector.get_model_recommendation(premium_requirement)

        assert recommendation.model.name == HEAVY.name
        assert [m.name for m, _ in recommendation.alternatives] == [CREATIVE.name, LIGHT.name]
        assert len(recommendation.reasoning) == 4

    @pytest.mark.asyncio
    async def test_works_without_collaborators(self, premium_requirement):
        selector = ModelSelector()
        assert (await selector.select_best_model(premium_requirement)).name == HEAVY.name

    @pytest.mark.asyncio
    async def test_custom_catalog(self):
        fast = descriptor("fast", speed=SpeedClass.FAST, complexity=ComplexityClass.LIGHT)
        slow = descriptor("slow", speed=SpeedClass.SLOW, complexity=ComplexityClass.HEAVY)
        selector = ModelSelector(catalog=[slow, fast])
        requirement = TaskRequirement(
            task_type=TaskType.QUESTION_ANSWERING,
            complexity=TaskComplexity.SIMPLE,
            quality=QualityLevel.DRAFT,
            urgency=Urgency.HIGH,
        )

        assert (await selector.select_best_model(requirement)).name == "fast"

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, selector, metrics, premium_requirement):
        await selector.select_best_model(premium_requirement)

        assert (
            metrics.registry.get_sample_value(
                "model_selections_total", {"model": HEAVY.name, "task_type": "content_generation"}
            )
            == 1
        )
