from agent_hums.llm.task_types import ALL_TOOLS, TASK_REQUIREMENTS, TaskType, get_task_requirement


def test_every_task_type_has_requirement() -> None:
    for task_type in TaskType:
        assert task_type in TASK_REQUIREMENTS


def test_conversation_is_latency_sensitive_without_tools() -> None:
    req = get_task_requirement(TaskType.CONVERSATION)
    assert req.latency_sensitive
    assert not req.needs_reasoning
    assert req.tools == ()
    assert req.max_cost_tier == "medium"


def test_tool_execution_exposes_every_tool() -> None:
    req = get_task_requirement(TaskType.TOOL_EXECUTION)
    assert req.tools == ALL_TOOLS
    assert req.temperature < get_task_requirement(TaskType.CONVERSATION).temperature


def test_complex_analysis_needs_reasoning() -> None:
    req = get_task_requirement(TaskType.COMPLEX_ANALYSIS)
    assert req.needs_reasoning
    assert req.tools == ("searchWeb",)
    assert req.max_tokens >= get_task_requirement(TaskType.TOOL_EXECUTION).max_tokens


def test_task_type_values() -> None:
    assert [t.value for t in TaskType] == ["conversation", "tool_execution", "complex_analysis"]
