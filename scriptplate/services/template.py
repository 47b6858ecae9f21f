"""Flat placeholder templates.

Placeholders use the fixed ``{{name}}`` syntax where ``name`` is an
identifier, optionally padded with whitespace inside the braces. Anything
else made of braces (an unterminated ``{{``, a stray ``}}``, ``{{ a-b }}``)
is literal text. Parsing never fails; rendering is strict.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Tuple, Union

from ..core.errors import UnknownPlaceholderError, UnresolvedPlaceholderError

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def extract_placeholders(text: str) -> Tuple[str, ...]:
    """Return distinct placeholder names in order of first appearance."""

    seen: Dict[str, None] = {}
    for match in PLACEHOLDER_RE.finditer(text):
        seen.setdefault(match.group(1), None)
    return tuple(seen)


class Template:
    """Template text plus the values bound to its placeholders."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._placeholders = extract_placeholders(source)
        self._bindings: Dict[str, str] = {}

    @classmethod
    def from_text(cls, text: str) -> "Template":
        return cls(text)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Template":
        text = Path(path).read_text(encoding="utf-8")
        return cls(text)

    @property
    def source(self) -> str:
        return self._source

    @property
    def placeholders(self) -> Tuple[str, ...]:
        return self._placeholders

    @property
    def bindings(self) -> Dict[str, str]:
        return dict(self._bindings)

    def declares(self, name: str) -> bool:
        return name in self._placeholders

    def set(self, name: str, value: object) -> None:
        if not self.declares(name):
            raise UnknownPlaceholderError(name, self._placeholders)
        self._bindings[name] = str(value)

    def missing(self) -> List[str]:
        return [name for name in self._placeholders if name not in self._bindings]

    def _substitute(self) -> str:
        def replacer(match: re.Match) -> str:
            return self._bindings.get(match.group(1), match.group(0))

        return PLACEHOLDER_RE.sub(replacer, self._source)

    def render(self) -> str:
        """Substitute every placeholder in a single pass.

        Raises:
            UnresolvedPlaceholderError: listing every unbound name at once.
        """
        rendered = self._substitute()
        missing = self.missing()
        if missing:
            raise UnresolvedPlaceholderError(missing, partial=rendered)
        return rendered

    def __repr__(self) -> str:
        return f"Template(placeholders={list(self._placeholders)!r}, bound={sorted(self._bindings)!r})"
