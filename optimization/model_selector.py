"""
Adaptive model selection. Scores every catalog backend against a task
requirement with six bounded factors plus a specialty bonus and picks the
highest total (first-listed wins ties).
"""

from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from config.constants import CACHE_LIMITS, TASK_STRENGTHS
from core.enums import ComplexityClass, Language, SpeedClass, TaskType, Urgency
from core.exceptions import ModelSelectionError, ValidationError
from core.models import TaskRequirement, utc_now

# =========================================================================
# CATALOG
# =========================================================================


@dataclass(frozen=True)
class ModelDescriptor:
    """
    Static metadata for one generation backend.

    Immutable; validated on construction so a malformed catalog fails at
    startup rather than at scoring time.
    """

    name: str
    strengths: FrozenSet[str]
    weaknesses: FrozenSet[str]
    max_output_tokens: int
    speed_class: SpeedClass
    complexity_class: ComplexityClass
    supported_languages: FrozenSet[Language]
    specialties: FrozenSet[str] = frozenset()
    provider: str = "huggingface"

    def __post_init__(self):
        """Validate descriptor."""
        if not self.name:
            raise ValidationError("Model name cannot be empty", field="name")
        if self.max_output_tokens <= 0:
            raise ValidationError(
                f"max_output_tokens must be positive for {self.name}",
                field="max_output_tokens",
                value=self.max_output_tokens,
            )
        if not self.supported_languages:
            raise ValidationError(f"{self.name} must support at least one language", field="supported_languages")
        if self.strengths & self.weaknesses:
            raise ValidationError(
                f"{self.name} lists the same tag as strength and weakness",
                field="strengths",
                value=sorted(self.strengths & self.weaknesses),
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider,
            "strengths": sorted(self.strengths),
            "weaknesses": sorted(self.weaknesses),
            "max_output_tokens": self.max_output_tokens,
            "speed_class": self.speed_class.value,
            "complexity_class": self.complexity_class.value,
            "supported_languages": sorted(l.value for l in self.supported_languages),
            "specialties": sorted(self.specialties),
        }


DEFAULT_MODEL_CATALOG: Tuple[ModelDescriptor, ...] = (
    ModelDescriptor(
        name="deepseek-ai/DeepSeek-V3.2-Exp",
        strengths=frozenset({"reasoning", "code_generation", "math", "analysis"}),
        weaknesses=frozenset({"creative_writing", "casual_chat"}),
        max_output_tokens=8192,
        speed_class=SpeedClass.MEDIUM,
        complexity_class=ComplexityClass.HEAVY,
        supported_languages=frozenset({Language.HEBREW, Language.ENGLISH}),
        specialties=frozenset({"technical_content", "educational", "problem_solving"}),
    ),
    ModelDescriptor(
        name="microsoft/DialoGPT-medium",
        strengths=frozenset({"conversation", "quick_responses", "casual_tone"}),
        weaknesses=frozenset({"complex_reasoning", "long_content"}),
        max_output_tokens=1024,
        speed_class=SpeedClass.FAST,
        complexity_class=ComplexityClass.LIGHT,
        supported_languages=frozenset({Language.ENGLISH}),
        specialties=frozenset({"chat", "simple_qa"}),
    ),
    ModelDescriptor(
        name="meta-llama/Llama-3.2-11B-Vision",
        strengths=frozenset({"multimodal", "creative_writing", "storytelling"}),
        weaknesses=frozenset({"mathematical_reasoning", "code"}),
        max_output_tokens=4096,
        speed_class=SpeedClass.MEDIUM,
        complexity_class=ComplexityClass.MEDIUM,
        supported_languages=frozenset({Language.HEBREW, Language.ENGLISH}),
        specialties=frozenset({"creative_content", "narrative", "visual_description"}),
    ),
)


def validate_catalog(catalog: Iterable[ModelDescriptor]) -> Tuple[ModelDescriptor, ...]:
    """Reject empty catalogs, foreign rows and duplicate names."""
    rows = tuple(catalog)
    if not rows:
        raise ValidationError("Model catalog cannot be empty", field="catalog")
    seen = set()
    for row in rows:
        if not isinstance(row, ModelDescriptor):
            raise ValidationError("Catalog rows must be ModelDescriptor", field="catalog", value=row)
        if row.name in seen:
            raise ValidationError(f"Duplicate model in catalog: {row.name}", field="catalog")
        seen.add(row.name)
    return rows


# =========================================================================
# SCORING
# =========================================================================


def task_type_score(model: ModelDescriptor, task_type: TaskType) -> float:
    relevant = TASK_STRENGTHS.get(task_type.value, ())
    return 20.0 * sum(1 for tag in relevant if tag in model.strengths)


def complexity_score(model: ModelDescriptor, requirement: TaskRequirement) -> float:
    diff = abs(requirement.complexity.rank - model.complexity_class.rank)
    return max(0.0, 30.0 - diff * 10.0)


def output_length_score(model: ModelDescriptor, requirement: TaskRequirement) -> float:
    required = requirement.output_length.required_tokens
    if model.max_output_tokens >= required:
        return 20.0
    if model.max_output_tokens >= required * 0.7:
        return 10.0
    return -10.0


def language_score(model: ModelDescriptor, language: Language) -> float:
    if language in model.supported_languages:
        return 25.0
    if language == Language.MIXED and len(model.supported_languages) > 1:
        return 20.0
    if language == Language.HEBREW and Language.ENGLISH in model.supported_languages:
        return 5.0
    return 0.0


def quality_score(model: ModelDescriptor, requirement: TaskRequirement) -> float:
    if model.complexity_class == requirement.quality.complexity_class:
        return 30.0
    if model.complexity_class == ComplexityClass.HEAVY and requirement.quality.value != "draft":
        return 20.0
    return 10.0


def urgency_score(model: ModelDescriptor, urgency: Urgency) -> float:
    """Exact speed match plus the high/fast and low/slow bonuses, which stack."""
    score = 0.0
    if model.speed_class == urgency.speed_class:
        score += 20.0
    if urgency == Urgency.HIGH and model.speed_class == SpeedClass.FAST:
        score += 25.0
    if urgency == Urgency.LOW and model.speed_class == SpeedClass.SLOW:
        score += 15.0
    return score or 5.0


def specialty_score(model: ModelDescriptor, requirement: TaskRequirement) -> float:
    context = (requirement.context or "").lower()
    score = 0.0
    if context:
        score += 15.0 * sum(1 for s in model.specialties if s.replace("_", " ") in context)
    if requirement.task_type == TaskType.CONTENT_GENERATION and "educational" in model.specialties:
        score += 20.0
    return score


def score_model(model: ModelDescriptor, requirement: TaskRequirement) -> float:
    """
    Total fit of one backend for a requirement, floored at 0.

    Args:
        model: Catalog row
        requirement: Task requirement

    Returns:
        Non-negative score
    """
    total = (
        task_type_score(model, requirement.task_type)
        + complexity_score(model, requirement)
        + output_length_score(model, requirement)
        + language_score(model, requirement.language)
        + quality_score(model, requirement)
        + urgency_score(model, requirement.urgency)
        + specialty_score(model, requirement)
    )
    return max(0.0, total)


def rank_models(
    catalog: Sequence[ModelDescriptor], requirement: TaskRequirement
) -> List[Tuple[ModelDescriptor, float]]:
    """All catalog rows with scores, best first; ties keep catalog order."""
    scored = [(model, score_model(model, requirement)) for model in catalog]
    return sorted(scored, key=lambda pair: pair[1], reverse=True)


@dataclass
class ModelRecommendation:
    """Selection outcome with runners-up and human-readable reasoning."""

    model: ModelDescriptor
    score: float
    alternatives: List[Tuple[ModelDescriptor, float]] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommended": self.model.to_dict(),
            "score": self.score,
            "alternatives": [{"name": m.name, "score": s} for m, s in self.alternatives],
            "reasoning": list(self.reasoning),
        }


# =========================================================================
# SELECTOR
# =========================================================================


class ModelSelector:
    """
    Catalog-driven backend selector.

    Selections are memoized for 10 minutes by the full requirement and
    every decision is written to the side channel.
    """

    HISTORY_SIZE = 1000

    def __init__(
        self,
        catalog: Iterable[ModelDescriptor] = DEFAULT_MODEL_CATALOG,
        cache_manager: Optional[Any] = None,
        side_channel: Optional[Any] = None,
        metrics_collector: Optional[Any] = None,
    ):
        self._catalog = list(validate_catalog(catalog))
        self.cache = cache_manager
        self.side_channel = side_channel
        self.metrics_collector = metrics_collector
        self._history: deque = deque(maxlen=self.HISTORY_SIZE)

        logger.info(f"ModelSelector initialized with {len(self._catalog)} models")

    @property
    def catalog(self) -> Tuple[ModelDescriptor, ...]:
        return tuple(self._catalog)

    def register_model(self, descriptor: ModelDescriptor) -> None:
        """Append a backend to the catalog (validated, names must be unique)."""
        self._catalog = list(validate_catalog([*self._catalog, descriptor]))
        logger.info(f"Registered model {descriptor.name}")

    async def select_best_model(self, requirement: TaskRequirement) -> ModelDescriptor:
        """
        Pick the best backend for a requirement.

        Args:
            requirement: Task requirement

        Returns:
            Winning catalog row
        """
        return (await self._select(requirement))[0]

    async def get_model_recommendation(self, requirement: TaskRequirement) -> ModelRecommendation:
        """
        Pick the best backend and report the top-2 alternatives with reasoning.

        Args:
            requirement: Task requirement

        Returns:
            ModelRecommendation
        """
        selected, score = await self._select(requirement)
        ranked = rank_models(self._catalog, requirement)
        alternatives = [(m, s) for m, s in ranked if m.name != selected.name][:2]

        reasoning = [
            f"Selected for {requirement.task_type.value} with {requirement.complexity.value} complexity",
            f"Optimized for {requirement.language.value} language",
            f"Quality level: {requirement.quality.value}",
            f"Speed requirement: {requirement.urgency.value}",
        ]
        return ModelRecommendation(model=selected, score=score, alternatives=alternatives, reasoning=reasoning)

    async def _select(self, requirement: TaskRequirement) -> Tuple[ModelDescriptor, float]:
        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.generate_key("selected_model", requirement.model_dump(mode="json"))
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Using cached model selection: {cached[0].name}")
                return cached

        ranked = rank_models(self._catalog, requirement)
        if not ranked:
            raise ModelSelectionError()

        selected, score = ranked[0]
        logger.info(f"Selected {selected.name} for {requirement.task_type.value} (score {score:.1f})")

        if cache_key is not None:
            await self.cache.set(cache_key, (selected, score), ttl=CACHE_LIMITS.MODEL_SELECTION_TTL)

        self._log_selection(requirement, selected, score, ranked)
        return selected, score

    def _log_selection(
        self,
        requirement: TaskRequirement,
        selected: ModelDescriptor,
        score: float,
        ranked: List[Tuple[ModelDescriptor, float]],
    ) -> None:
        entry = {
            "timestamp": utc_now().isoformat(),
            "requirement": requirement.model_dump(mode="json"),
            "selected_model": selected.name,
            "score": score,
            "alternatives": [{"name": m.name, "score": s} for m, s in ranked[1:3]],
        }
        self._history.append(entry)

        if self.metrics_collector is not None:
            self.metrics_collector.record_model_selection(selected.name, requirement.task_type.value)

        # Best-effort; never blocks or fails the selection
        if self.side_channel is not None:
            self.side_channel.emit("model_selection", **entry)

    def get_selection_statistics(self) -> Dict[str, Any]:
        """Selections per model and average winning score over the history window."""
        if not self._history:
            return {"total_selections": 0, "by_model": {}, "average_score": 0.0}

        by_model = Counter(entry["selected_model"] for entry in self._history)
        return {
            "total_selections": len(self._history),
            "by_model": dict(by_model),
            "average_score": sum(e["score"] for e in self._history) / len(self._history),
        }


__all__ = [
    "ModelDescriptor",
    "DEFAULT_MODEL_CATALOG",
    "ModelRecommendation",
    "ModelSelector",
    "rank_models",
    "score_model",
    "validate_catalog",
]
