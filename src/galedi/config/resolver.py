"""
Placeholder substitution for raw configuration data.

``${VAR}`` and ``${VAR:-fallback}`` are taken from the process environment,
``{env}`` becomes the active environment name. A ``${VAR}`` without fallback
whose variable is unset stays in the text so validation can name it.
"""

import os
import re
from typing import Any

_PLACEHOLDER = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<fallback>[^}]*))?\}")


def _substitute(text: str, env: str) -> str:
    def lookup(match: re.Match) -> str:
        value = os.environ.get(match.group("name"))
        if value is not None:
            return value
        fallback = match.group("fallback")
        return match.group(0) if fallback is None else fallback

    return _PLACEHOLDER.sub(lookup, text).replace("{env}", env)


def resolve_config(config_data: dict[str, Any], env: str = "dev") -> dict[str, Any]:
    """Return a copy of ``config_data`` with every string placeholder substituted."""

    def walk(node: Any) -> Any:
        if isinstance(node, dict):
            return {key: walk(value) for key, value in node.items()}
        if isinstance(node, list):
            return [walk(item) for item in node]
        if isinstance(node, str):
            return _substitute(node, env)
        return node

    return walk(config_data)


def has_unresolved_placeholder(value: Any) -> bool:
    return isinstance(value, str) and _PLACEHOLDER.search(value) is not None
