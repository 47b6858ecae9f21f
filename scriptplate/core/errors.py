from __future__ import annotations

from typing import Iterable, Optional, Sequence


class TemplateError(RuntimeError):
    """Base error for template rendering and execution."""


class ParseError(TemplateError):
    """Raised when template input sources are missing or conflicting."""


class UnknownPlaceholderError(TemplateError):
    """Raised when a value is assigned to a placeholder nobody declares."""

    def __init__(self, name: str, known: Iterable[str] = ()) -> None:
        self.name = name
        self.known = tuple(known)
        super().__init__(f"Unknown placeholder '{name}'")


class UnresolvedPlaceholderError(TemplateError):
    """Raised when rendering with placeholders that have no binding."""

    def __init__(self, missing: Sequence[str], partial: str = "") -> None:
        self.missing = tuple(missing)
        self.partial = partial
        names = ", ".join(self.missing)
        super().__init__(f"Unresolved placeholders: {names}")


class RenderError(TemplateError):
    """Raised by the assembler when one of its entries fails to render."""

    def __init__(self, index: int, error: TemplateError) -> None:
        self.index = index
        self.error = error
        super().__init__(f"Template #{index} failed to render: {error}")

    @property
    def missing(self) -> tuple[str, ...]:
        return getattr(self.error, "missing", ())


class ExecutionError(TemplateError):
    """Raised when the external toolchain fails to build or run a program."""

    def __init__(
        self,
        message: str,
        stderr: str = "",
        returncode: Optional[int] = None,
        stage: str = "run",
    ) -> None:
        self.stderr = stderr
        self.returncode = returncode
        self.stage = stage
        super().__init__(message)
