"""Agent Hums chat backend: task-aware dispatch to hosted LLMs with retry and fallback."""
