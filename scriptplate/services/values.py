from __future__ import annotations

from typing import Dict, Iterable, Mapping

from .template import Template


def parse_key_values(pairs: Iterable[str]) -> Dict[str, str]:
    """Parse ``key=value`` strings; pairs without ``=`` are dropped."""

    values: Dict[str, str] = {}
    for pair in pairs or ():
        key, sep, value = pair.partition("=")
        if sep:
            values[key] = value
    return values


def apply_values(template: Template, values: Mapping[str, str]) -> None:
    for key, value in values.items():
        template.set(key, value)
