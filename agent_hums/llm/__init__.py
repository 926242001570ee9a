"""LLM runtime layer: task classification, routing, retry/fallback, prompts."""

from agent_hums.llm.classifier import classify_task
from agent_hums.llm.retry import RetryController, RetryPolicy
from agent_hums.llm.router import select_model
from agent_hums.llm.task_types import TaskRequirement, TaskType

__all__ = [
    "RetryController",
    "RetryPolicy",
    "TaskRequirement",
    "TaskType",
    "classify_task",
    "select_model",
]
