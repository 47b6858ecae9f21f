from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..core.settings import get_settings
from .backends import ExecutionBackend, get_backend
from .dependency import DependencySpec
from .template import Template

logger = logging.getLogger(__name__)

_UNSET = object()


class ExecutableReference:
    """A template whose rendered text is run as a standalone program."""

    def __init__(
        self,
        template: Template,
        backend: Optional[ExecutionBackend] = None,
        timeout=_UNSET,
    ) -> None:
        self.template = template
        self._backend = backend
        self._timeout = timeout
        self._dependencies: List[DependencySpec] = []

    @property
    def dependencies(self) -> Tuple[DependencySpec, ...]:
        return tuple(self._dependencies)

    @property
    def backend(self) -> ExecutionBackend:
        if self._backend is None:
            self._backend = get_backend()
        return self._backend

    @property
    def timeout(self) -> Optional[float]:
        if self._timeout is _UNSET:
            return get_settings().execute_timeout
        if self._timeout is None or self._timeout <= 0:
            return None
        return self._timeout

    def with_dependency(self, spec_text: str) -> "ExecutableReference":
        spec = DependencySpec.parse(spec_text)
        if spec is None:
            logger.warning("Ignoring malformed dependency spec %r (expected name=version)", spec_text)
            return self
        self._dependencies.append(spec)
        return self

    async def execute(self) -> str:
        """Render the template, then build and run it out of process.

        Rendering errors propagate before any toolchain work starts.
        """
        source = self.template.render()
        backend = self.backend
        logger.debug(
            "Executing template via %s backend with %d dependencies",
            backend.name,
            len(self._dependencies),
        )
        return await backend.run(source, self._dependencies, timeout=self.timeout)
