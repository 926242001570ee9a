"""Capability-based model selection.

Each task type states what it needs (tool calling, low latency, reasoning
depth, a cost ceiling); every enabled model in the registry is filtered by
those needs and ranked by a weighted score. Registry order breaks ties.
"""

from __future__ import annotations

import logging

from agent_hums.llm.task_types import TASK_REQUIREMENTS, TaskType
from agent_hums.schemas import CostTier, ModelConfig

logger = logging.getLogger(__name__)

REASONING_WEIGHT = 2.0
LATENCY_WEIGHT = 1.5
TOOL_REASONING_WEIGHT = 1.0
CHEAPNESS_WEIGHT = 0.8


def _is_eligible(model: ModelConfig, task_type: TaskType) -> bool:
    req = TASK_REQUIREMENTS[task_type]
    if not model.enabled:
        return False
    if req.tools and not model.supports_tools:
        return False
    return model.cost_tier <= CostTier[req.max_cost_tier.upper()]


def _score_model(model: ModelConfig, task_type: TaskType) -> float:
    req = TASK_REQUIREMENTS[task_type]
    weights = (
        (req.needs_reasoning, model.reasoning_score, REASONING_WEIGHT),
        (req.latency_sensitive, model.latency_score, LATENCY_WEIGHT),
        (bool(req.tools), model.reasoning_score, TOOL_REASONING_WEIGHT),
    )
    score = sum(value * weight for wanted, value, weight in weights if wanted)
    # Cheaper tiers earn a small bonus: LOW=3, MEDIUM=2, HIGH=1 steps.
    return score + (CostTier.HIGH + 1 - model.cost_tier) * CHEAPNESS_WEIGHT


def rank_models(task_type: TaskType, registry: dict[str, ModelConfig]) -> list[tuple[float, ModelConfig]]:
    """Eligible models for ``task_type``, best first."""
    scored = [(_score_model(m, task_type), m) for m in registry.values() if _is_eligible(m, task_type)]
    return sorted(scored, key=lambda pair: pair[0], reverse=True)


def select_model(
    task_type: TaskType,
    available_models: dict[str, ModelConfig],
    override_model_id: str | None = None,
) -> str | None:
    if override_model_id:
        if override_model_id in available_models:
            return override_model_id
        logger.warning("Requested model %s is not registered, routing by task", override_model_id)

    ranked = rank_models(task_type, available_models)
    if not ranked:
        logger.warning("No eligible model for task=%s among %d registered", task_type, len(available_models))
        return None

    score, chosen = ranked[0]
    logger.info("Routing task=%s to %s (score=%.1f of %d candidates)", task_type, chosen.id, score, len(ranked))
    return chosen.id
