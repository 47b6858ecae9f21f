from .assembler import Assembler
from .backends import BACKENDS, ExecutionBackend, UvScriptBackend, VenvBackend, get_backend
from .dependency import DependencySpec
from .executable import ExecutableReference
from .template import PLACEHOLDER_RE, Template, extract_placeholders
from .values import apply_values, parse_key_values

__all__ = [
    "Assembler",
    "BACKENDS",
    "ExecutionBackend",
    "UvScriptBackend",
    "VenvBackend",
    "get_backend",
    "DependencySpec",
    "ExecutableReference",
    "PLACEHOLDER_RE",
    "Template",
    "extract_placeholders",
    "apply_values",
    "parse_key_values",
]
