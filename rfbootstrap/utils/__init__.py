"""Utility functions and helpers for the rfbootstrap application."""
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Union

import yaml

from ..modules.models import StepOutcome

REDACT_KEYS = ("secret", "password", "token", "api_key")

logger = logging.getLogger("rfbootstrap.utils")


def redact_sensitive_data(data: Any, keys: Iterable[str] = REDACT_KEYS) -> Any:
    """Recursively redact sensitive data from dictionaries and lists.

    A Secret manifest is redacted as a whole below its ``data``/``stringData``.

    Args:
        data: Input data that might contain sensitive information
        keys: Substrings that mark a key as sensitive

    Returns:
        Data with sensitive values redacted
    """
    keys = tuple(keys)
    if isinstance(data, dict):
        if data.get("kind") == "Secret":
            return {
                k: "[REDACTED]" if k in ("data", "stringData") else redact_sensitive_data(v, keys)
                for k, v in data.items()
            }
        return {
            k: "[REDACTED]" if any(
                redact_key.lower() in str(k).lower()
                for redact_key in keys
            ) else redact_sensitive_data(v, keys)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item, keys) for item in data]
    return data


def best_effort(name: str, func: Callable[..., Any], *args, **kwargs) -> StepOutcome:
    """Run a teardown step; log any failure and carry on.

    Returns a :class:`StepOutcome` instead of raising so a sequence of steps
    is always attempted in full.
    """
    try:
        func(*args, **kwargs)
    except Exception as e:
        logger.warning(f"⚠️  {name} failed (continuing): {e}")
        logger.debug(f"{name} failure detail", exc_info=True)
        return StepOutcome(name=name, ok=False, error=str(e))
    logger.debug(f"{name} done")
    return StepOutcome(name=name, ok=True)


def failed_steps(outcomes: List[StepOutcome]) -> List[StepOutcome]:
    return [outcome for outcome in outcomes if not outcome.ok]


def write_yaml_file(path: Union[str, Path], data: Dict[str, Any], mode: int = 0o600) -> None:
    """Write a YAML file with the given data.

    Args:
        path: Path to the YAML file
        data: Data to write as YAML
        mode: File permissions (default: 0o600)

    Raises:
        OSError: If the file cannot be written
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, mode)
    except OSError as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise
