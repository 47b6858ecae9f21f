from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from . import __version__
from .core.errors import ExecutionError, ParseError, TemplateError
from .core.logging_config import setup_logging
from .services import (
    BACKENDS,
    Assembler,
    ExecutableReference,
    Template,
    apply_values,
    get_backend,
    parse_key_values,
)

err_console = Console(stderr=True, soft_wrap=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scriptplate", description="Manage, render and run script templates.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="Logging level (default from SCRIPTPLATE_LOG_LEVEL)")
    commands = parser.add_subparsers(dest="command", required=True)

    new = commands.add_parser("new", help="Create a new template file")
    new.add_argument("-o", "--output", type=Path, required=True, help="Path to save the template")
    new.add_argument("-c", "--content", default=None, help="Template content")
    new.add_argument("-f", "--file", type=Path, default=None, help="Template content from file")

    render = commands.add_parser("render", help="Render a template with provided values")
    render.add_argument("-t", "--template", type=Path, required=True, help="Path to template file")
    render.add_argument("-v", "--values", action="append", default=[], help="Placeholder value (key=value)")
    render.add_argument("-o", "--output", type=Path, default=None, help="Output path for rendered content")

    execute = commands.add_parser("execute", help="Render a template and run it as a Python script")
    execute.add_argument("-t", "--template", type=Path, required=True, help="Path to template file")
    execute.add_argument("-v", "--values", action="append", default=[], help="Placeholder value (key=value)")
    execute.add_argument("-d", "--dependencies", action="append", default=[], help="Dependency (name=version)")
    execute.add_argument("--backend", choices=sorted(BACKENDS), default=None, help="Build/run toolchain")
    execute.add_argument("--timeout", type=float, default=None, help="Seconds before the run is aborted")

    assemble = commands.add_parser("assemble", help="Combine multiple templates")
    assemble.add_argument("-t", "--templates", type=Path, action="append", default=[], help="Template file")
    assemble.add_argument("-v", "--values", action="append", default=[], help="Global value (key=value)")
    assemble.add_argument("-o", "--output", type=Path, required=True, help="Output path for combined template")
    return parser


def _new_content(content: Optional[str], file: Optional[Path]) -> str:
    if content is not None and file is not None:
        raise ParseError("Cannot provide both content and file")
    if content is not None:
        return content
    if file is not None:
        return file.read_text(encoding="utf-8")
    raise ParseError("Either content or file must be provided")


def _write_stdout(text: str) -> None:
    sys.stdout.write(text + "\n")
    sys.stdout.flush()


def cmd_new(args: argparse.Namespace) -> None:
    args.output.write_text(_new_content(args.content, args.file), encoding="utf-8")


def cmd_render(args: argparse.Namespace) -> None:
    template = Template.from_file(args.template)
    apply_values(template, parse_key_values(args.values))
    rendered = template.render()
    if args.output is not None:
        args.output.write_text(rendered, encoding="utf-8")
    else:
        _write_stdout(rendered)


def cmd_execute(args: argparse.Namespace) -> None:
    options = {"timeout": args.timeout} if args.timeout is not None else {}
    reference = ExecutableReference(Template.from_file(args.template), backend=get_backend(args.backend), **options)
    for dependency in args.dependencies:
        reference = reference.with_dependency(dependency)
    apply_values(reference.template, parse_key_values(args.values))
    output = asyncio.run(reference.execute())
    _write_stdout(output)


def cmd_assemble(args: argparse.Namespace) -> None:
    assembler = Assembler()
    for path in args.templates:
        assembler.add_template(Template.from_file(path))
    for key, value in parse_key_values(args.values).items():
        assembler.set_global(key, value)
    args.output.write_text(assembler.render_all(), encoding="utf-8")


COMMANDS = {
    "new": cmd_new,
    "render": cmd_render,
    "execute": cmd_execute,
    "assemble": cmd_assemble,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    try:
        setup_logging(args.log_level)
        COMMANDS[args.command](args)
    except ExecutionError as exc:
        err_console.print(Text(f"Error: {exc}"))
        if exc.stderr.strip():
            err_console.print(Panel(Text(exc.stderr.rstrip()), title="stderr", border_style="red"))
        return 1
    except (TemplateError, OSError, ValueError) as exc:
        err_console.print(Text(f"Error: {exc}"))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
