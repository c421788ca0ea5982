"""Prompts package."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml

from bulk_import.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def _load_overrides(prompts_file: Optional[str]) -> Dict[str, str]:
    if not prompts_file:
        return {}

    path = Path(prompts_file)
    if not path.exists():
        logger.warning(f"Prompts file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        logger.warning(f"Prompts file {path} must contain a mapping, ignoring it")
        return {}

    return {str(k): str(v) for k, v in data.items() if v}


def load_system_prompt(name: str, default: str) -> str:
    """
    Return the system prompt registered under `name`.

    A YAML file configured via `prompts_file` may override any prompt by
    key; otherwise the built-in default is used.
    """
    overrides = _load_overrides(get_settings().prompts_file)
    return overrides.get(name, default)


__all__ = ["load_system_prompt"]
