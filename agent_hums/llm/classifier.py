"""Keyword-based task classification.

Maps a chat message to the TaskType that decides which model, prompt and tool
set serve it. Rules are evaluated in order and the first matching rule wins;
a message matching no rule is plain conversation.

Matching is case- and accent-insensitive ("Reunión" == "reunion"). Each phrase
is a regex fragment anchored at the start of a word, so stems such as
``investig`` cover "investigar", "investiga" and "investigate".
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from functools import cached_property

from agent_hums.errors import InvalidInput
from agent_hums.llm.task_types import TaskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordRule:
    task_type: TaskType
    phrases: tuple[str, ...]

    @cached_property
    def pattern(self) -> re.Pattern[str]:
        alternatives = "|".join(f"(?:{p})" for p in self.phrases)
        return re.compile(rf"\b(?:{alternatives})", re.IGNORECASE)

    def first_match(self, normalized: str) -> str | None:
        match = self.pattern.search(normalized)
        return match.group(0) if match else None


TOOL_EXECUTION_PHRASES: tuple[str, ...] = (
    # Web search
    r"busca",
    r"buscar",
    r"busqueda",
    r"en internet",
    r"en la web",
    r"ultimas noticias",
    r"search",
    r"look up",
    r"google it",
    r"browse",
    r"latest news",
    # Calendar
    r"calendario",
    r"agenda(r)?\b",
    r"evento",
    r"reunion",
    r"cita\b",
    r"calendar",
    r"schedule",
    r"meeting",
    r"appointment",
    r"events?\b",
    # Drive / files
    r"google drive",
    r"drive\b",
    r"sub(e|ir|elo|elos)\b",
    r"documento",
    r"archivo",
    r"carpeta",
    r"upload",
    r"files?\b",
    r"folder",
    r"\w+\.(pdf|docx?|xlsx?|csv|txt)\b",
)

COMPLEX_ANALYSIS_PHRASES: tuple[str, ...] = (
    r"a fondo",
    r"en profundidad",
    r"profundamente",
    r"detalladamente",
    r"analisis detallado",
    r"compar(a|as|ar|o|e|en|es|ed|ing|acion(es)?|ativ[ao]s?|isons?)\b",
    r"evalu",
    r"investig",
    r"decid",
    r"decision",
    r"ventajas y desventajas",
    r"pros y contras",
    r"diferencias entre",
    r"estrategia",
    r"que me conviene",
    r"cual (es )?(mejor|conviene)",
    r"vs\b",
    r"versus",
    r"in[- ]depth",
    r"deep dive",
    r"thorough",
    r"assess",
    r"pros and cons",
    r"trade-?offs?",
    r"which is better",
    r"strategy",
)

# Order is precedence: tool vocabulary beats analysis vocabulary.
DEFAULT_RULES: tuple[KeywordRule, ...] = (
    KeywordRule(TaskType.TOOL_EXECUTION, TOOL_EXECUTION_PHRASES),
    KeywordRule(TaskType.COMPLEX_ANALYSIS, COMPLEX_ANALYSIS_PHRASES),
)


def normalize_text(text: str) -> str:
    """Casefold and strip diacritics so keyword tables can be written in ASCII."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def parse_task_type(value: str | TaskType) -> TaskType:
    if isinstance(value, TaskType):
        return value
    try:
        return TaskType(value.strip().lower())
    except (ValueError, AttributeError):
        allowed = ", ".join(t.value for t in TaskType)
        raise InvalidInput(f"Invalid forceTaskType {value!r}; expected one of: {allowed}")


def classify_task(
    message: str,
    force_task_type: str | TaskType | None = None,
    rules: tuple[KeywordRule, ...] = DEFAULT_RULES,
) -> TaskType:
    """Return the TaskType for ``message``.

    A valid ``force_task_type`` always wins; an unknown one raises InvalidInput.
    Pure function: no state, no I/O beyond a debug log line.
    """
    if not message or not message.strip():
        raise InvalidInput("Message must not be empty")

    if force_task_type is not None:
        return parse_task_type(force_task_type)

    normalized = normalize_text(message)
    for rule in rules:
        matched = rule.first_match(normalized)
        if matched is not None:
            logger.debug("Classifier: %r matched %s", matched, rule.task_type)
            return rule.task_type

    return TaskType.CONVERSATION
