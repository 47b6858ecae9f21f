"""Flat placeholder templates, multi-template assembly and render-then-run execution."""

from .core.errors import (
    ExecutionError,
    ParseError,
    RenderError,
    TemplateError,
    UnknownPlaceholderError,
    UnresolvedPlaceholderError,
)
from .services import Assembler, DependencySpec, ExecutableReference, Template

__version__ = "0.1.0"

__all__ = [
    "Assembler",
    "DependencySpec",
    "ExecutableReference",
    "Template",
    "ExecutionError",
    "ParseError",
    "RenderError",
    "TemplateError",
    "UnknownPlaceholderError",
    "UnresolvedPlaceholderError",
]
