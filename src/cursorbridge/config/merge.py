"""Layering of bridge configuration files.

System, user and project YAML files are read as plain dicts and folded
together, lowest precedence first, before being turned into ``Config``.
A project file that only sets ``agent.model`` therefore keeps every other
``agent`` key from the user or system layer.
"""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Fold ``override`` into a copy of ``base``.

    Sections (nested dicts) merge key by key. Lists such as
    ``agent.extra_args`` or ``session.modes`` are taken whole from the
    higher layer. A null in the higher layer means "not set here" and
    leaves the lower value alone.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_configs(*layers: dict[str, Any]) -> dict[str, Any]:
    """Merge config layers in precedence order; empty or missing layers are skipped."""
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer:
            merged = deep_merge(merged, layer)
    return merged
