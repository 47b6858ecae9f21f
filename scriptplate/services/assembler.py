from __future__ import annotations

from typing import Dict, List, Tuple, Union

from ..core.errors import RenderError, TemplateError, UnknownPlaceholderError
from .executable import ExecutableReference
from .template import Template

Entry = Union[Template, ExecutableReference]


def _template_of(entry: Entry) -> Template:
    if isinstance(entry, ExecutableReference):
        return entry.template
    return entry


class Assembler:
    """Render several templates under shared globals and join the results."""

    def __init__(self) -> None:
        self._entries: List[Entry] = []
        self._globals: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[Entry, ...]:
        return tuple(self._entries)

    @property
    def globals(self) -> Dict[str, str]:
        return dict(self._globals)

    def placeholders(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for entry in self._entries:
            for name in _template_of(entry).placeholders:
                seen.setdefault(name, None)
        return tuple(seen)

    def add_template(self, entry: Entry) -> None:
        template = _template_of(entry)
        for name, value in self._globals.items():
            if template.declares(name):
                template.set(name, value)
        self._entries.append(entry)

    def set_global(self, name: str, value: object) -> None:
        targets = [_template_of(e) for e in self._entries if _template_of(e).declares(name)]
        if not targets:
            raise UnknownPlaceholderError(name, self.placeholders())
        for template in targets:
            template.set(name, value)
        self._globals[name] = str(value)

    def render_all(self) -> str:
        parts: List[str] = []
        for index, entry in enumerate(self._entries):
            try:
                parts.append(_template_of(entry).render())
            except TemplateError as exc:
                raise RenderError(index, exc) from exc
        return "".join(parts)
