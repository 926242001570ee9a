"""YAML configuration files with ``${VAR}`` / ``${VAR:-default}`` expansion.

Two files are read through here: the optional settings overlay
(``HUMS_CONFIG_PATH``) and the optional model registry (``MODEL_CONFIG_PATH``).
Both are optional; every failure is logged and reported as ``None`` so the
caller keeps its environment-derived defaults.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from agent_hums.schemas import ModelConfig

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<default>.*?))?\}")


def _substitute_env_vars(value: str) -> str:
    def _lookup(match: re.Match[str]) -> str:
        return os.environ.get(match["name"], match["default"] or "")

    return _PLACEHOLDER.sub(_lookup, value)


def _expand(node: Any) -> Any:
    """Apply placeholder expansion to every string leaf."""
    if isinstance(node, str):
        return _substitute_env_vars(node)
    if isinstance(node, list):
        return list(map(_expand, node))
    if isinstance(node, dict):
        return {key: _expand(value) for key, value in node.items()}
    return node


def load_yaml_file(config_path: str | None) -> dict[str, Any] | None:
    """Parse ``config_path`` into an expanded mapping, or None when unusable."""
    if not config_path:
        return None

    path = Path(config_path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        logger.warning("Config file not found: %s", path)
        return None
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Could not read config %s: %s", path, e)
        return None

    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: top level must be a mapping", path)
        return None
    return _expand(data)


def _model_entries(raw: Any) -> list[dict[str, Any]]:
    # ``models`` may be a list of entries or a mapping keyed by model id.
    if isinstance(raw, dict):
        return [{"id": key, **(entry if isinstance(entry, dict) else {})} for key, entry in raw.items()]
    if isinstance(raw, list):
        return raw
    return []


def load_model_config(config_path: str | None = None) -> dict[str, ModelConfig] | None:
    data = load_yaml_file(config_path)
    if data is None:
        return None

    entries = _model_entries(data.get("models"))
    if not entries:
        logger.warning("No 'models' entries in %s", config_path)
        return None

    registry: dict[str, ModelConfig] = {}
    for position, entry in enumerate(entries, start=1):
        try:
            model = ModelConfig.model_validate(entry)
        except ValidationError as e:
            logger.warning("Model entry #%d in %s is invalid, skipping: %s", position, config_path, e)
            continue
        if model.id in registry:
            logger.warning("Duplicate model id %s in %s, keeping the later entry", model.id, config_path)
        registry[model.id] = model

    if not registry:
        logger.warning("Every model entry in %s was invalid", config_path)
        return None

    logger.info("Model registry loaded from %s: %s", config_path, ", ".join(registry))
    return registry
