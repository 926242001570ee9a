from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

CostTier = Literal["low", "medium", "high"]


class TaskType(StrEnum):
    CONVERSATION = "conversation"
    TOOL_EXECUTION = "tool_execution"
    COMPLEX_ANALYSIS = "complex_analysis"


ALL_TOOLS: tuple[str, ...] = (
    "searchWeb",
    "listCalendarEvents",
    "createCalendarEvent",
    "deleteCalendarEvent",
    "listDriveFiles",
    "uploadDriveFile",
    "analyzeDocument",
)


@dataclass(frozen=True)
class TaskRequirement:
    needs_reasoning: bool = False
    latency_sensitive: bool = False
    max_cost_tier: CostTier = "high"
    temperature: float = 0.7
    max_tokens: int = 1024
    tools: tuple[str, ...] = field(default_factory=tuple)


TASK_REQUIREMENTS: dict[TaskType, TaskRequirement] = {
    TaskType.CONVERSATION: TaskRequirement(
        latency_sensitive=True,
        max_cost_tier="medium",
        temperature=0.7,
        max_tokens=1024,
    ),
    TaskType.TOOL_EXECUTION: TaskRequirement(
        max_cost_tier="high",
        temperature=0.2,
        max_tokens=2048,
        tools=ALL_TOOLS,
    ),
    TaskType.COMPLEX_ANALYSIS: TaskRequirement(
        needs_reasoning=True,
        max_cost_tier="high",
        temperature=0.4,
        max_tokens=4096,
        tools=("searchWeb",),
    ),
}


def get_task_requirement(task_type: TaskType) -> TaskRequirement:
    return TASK_REQUIREMENTS[task_type]
