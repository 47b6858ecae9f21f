"""Out-of-process build/run backends.

A backend receives rendered program text plus its dependency list, lays them
out in a private temporary directory, drives an external toolchain and
returns the program's standard output. The directory is removed on every
exit path.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal
import subprocess
import sys
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type
from uuid import uuid4

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..core.errors import ExecutionError
from ..core.settings import Settings, get_settings
from .dependency import DependencySpec

logger = logging.getLogger(__name__)

RUNTIME_DIR = Path(__file__).resolve().parents[1] / "runtime"

_env = Environment(
    loader=FileSystemLoader(str(RUNTIME_DIR)),
    keep_trailing_newline=True,
    undefined=StrictUndefined,
    autoescape=False,
)
_env.filters["toml_str"] = lambda value: json.dumps(str(value), ensure_ascii=False)


def render_runtime(name: str, **context) -> str:
    return _env.get_template(name).render(**context)


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    returncode: int


def _spawn_options() -> Dict[str, object]:
    # Own process group, so a kill also reaches whatever the toolchain started.
    if os.name == "nt":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


async def _kill_tree(process: asyncio.subprocess.Process) -> None:
    if os.name == "nt":
        killer = await asyncio.create_subprocess_exec(
            "taskkill", "/F", "/T", "/PID", str(process.pid),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await killer.wait()
    else:
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


async def run_process(cmd: List[str], cwd: Path, stage: str) -> ProcessResult:
    """Run one toolchain command with stdin disconnected.

    The child and every process it started are killed if the awaiting task
    is cancelled (including by a timeout wrapped around this coroutine).
    """
    logger.debug("[%s] %s", stage, " ".join(cmd))
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **_spawn_options(),
        )
    except FileNotFoundError as exc:
        raise ExecutionError(f"Toolchain not found: {cmd[0]}", stderr=str(exc), stage=stage) from exc

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        logger.debug("[%s] killing process group of pid %s", stage, process.pid)
        await _kill_tree(process)
        raise

    return ProcessResult(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        returncode=process.returncode,
    )


class ExecutionBackend(ABC):
    """Build and run rendered program text in an ephemeral directory."""

    name = "base"

    def __init__(self, work_root: Optional[Path] = None) -> None:
        self.work_root = work_root

    @abstractmethod
    def materialize(self, workdir: Path, source: str, dependencies: Sequence[DependencySpec]) -> Path:
        """Write the program and its manifest; return the program path."""

    @abstractmethod
    async def run_program(self, workdir: Path, program: Path, dependencies: Sequence[DependencySpec]) -> str:
        """Resolve dependencies, build and run ``program``; return stdout."""

    async def run(
        self,
        source: str,
        dependencies: Sequence[DependencySpec] = (),
        timeout: Optional[float] = None,
    ) -> str:
        dependencies = list(dependencies)
        root = str(self.work_root) if self.work_root else None
        with tempfile.TemporaryDirectory(prefix="scriptplate-", dir=root) as tmpdir:
            workdir = Path(tmpdir)
            program = self.materialize(workdir, source, dependencies)
            try:
                return await asyncio.wait_for(
                    self.run_program(workdir, program, dependencies),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as exc:
                raise ExecutionError(
                    f"Execution timed out after {timeout}s",
                    stage="timeout",
                ) from exc
            finally:
                logger.debug("Removing ephemeral directory %s", workdir)

    @staticmethod
    def _check(result: ProcessResult, stage: str) -> ProcessResult:
        if result.returncode != 0:
            raise ExecutionError(
                f"{stage.capitalize()} step failed with exit code {result.returncode}",
                stderr=result.stderr,
                returncode=result.returncode,
                stage=stage,
            )
        return result


class UvScriptBackend(ExecutionBackend):
    """Run a single-file script through ``uv run --script``.

    Dependencies are declared in a PEP 723 inline metadata block prepended
    to the program; uv resolves them into a cached, isolated environment.
    """

    name = "uv"

    def __init__(
        self,
        uv_path: str = "uv",
        python: Optional[str] = None,
        requires_python: Optional[str] = None,
        work_root: Optional[Path] = None,
    ) -> None:
        super().__init__(work_root=work_root)
        self.uv_path = uv_path
        self.python = python
        self.requires_python = requires_python

    def render_script(self, source: str, dependencies: Sequence[DependencySpec]) -> str:
        return render_runtime(
            "script.py.j2",
            source=source,
            requirements=[dep.requirement for dep in dependencies],
            requires_python=self.requires_python,
        )

    def materialize(self, workdir: Path, source: str, dependencies: Sequence[DependencySpec]) -> Path:
        program = workdir / f"script_{uuid4().hex}.py"
        program.write_text(self.render_script(source, dependencies), encoding="utf-8")
        return program

    def command(self, program: Path) -> List[str]:
        cmd = [self.uv_path, "run", "--quiet", "--no-project"]
        if self.python:
            cmd += ["--python", self.python]
        return cmd + ["--script", str(program)]

    async def run_program(self, workdir: Path, program: Path, dependencies: Sequence[DependencySpec]) -> str:
        result = await run_process(self.command(program), workdir, "run")
        return self._check(result, "run").stdout


class VenvBackend(ExecutionBackend):
    """Create a throwaway virtualenv, pip-install the requirements, run."""

    name = "venv"

    def __init__(self, python: str = sys.executable, work_root: Optional[Path] = None) -> None:
        super().__init__(work_root=work_root)
        self.python = python

    def materialize(self, workdir: Path, source: str, dependencies: Sequence[DependencySpec]) -> Path:
        program = workdir / f"program_{uuid4().hex}.py"
        program.write_text(source, encoding="utf-8")
        manifest = render_runtime(
            "requirements.txt.j2",
            requirements=[dep.requirement for dep in dependencies],
        )
        (workdir / "requirements.txt").write_text(manifest, encoding="utf-8")
        return program

    @staticmethod
    def env_python(env_dir: Path) -> Path:
        if os.name == "nt":
            return env_dir / "Scripts" / "python.exe"
        return env_dir / "bin" / "python"

    async def run_program(self, workdir: Path, program: Path, dependencies: Sequence[DependencySpec]) -> str:
        env_dir = workdir / ".venv"
        create = [self.python, "-m", "venv"]
        if not dependencies:
            create.append("--without-pip")
        self._check(await run_process(create + [str(env_dir)], workdir, "build"), "build")

        python = str(self.env_python(env_dir))
        if dependencies:
            install = [
                python, "-m", "pip", "install",
                "--quiet", "--disable-pip-version-check",
                "-r", str(workdir / "requirements.txt"),
            ]
            self._check(await run_process(install, workdir, "build"), "build")

        result = await run_process([python, str(program)], workdir, "run")
        return self._check(result, "run").stdout


BACKENDS: Dict[str, Type[ExecutionBackend]] = {
    UvScriptBackend.name: UvScriptBackend,
    VenvBackend.name: VenvBackend,
}


def get_backend(name: Optional[str] = None, settings: Optional[Settings] = None) -> ExecutionBackend:
    settings = settings or get_settings()
    key = (name or settings.backend).lower()
    if key == UvScriptBackend.name:
        return UvScriptBackend(uv_path=settings.uv_path, work_root=settings.work_root)
    if key == VenvBackend.name:
        return VenvBackend(python=settings.python_path, work_root=settings.work_root)
    raise ValueError(f"Unknown execution backend '{key}'; expected one of {sorted(BACKENDS)}")
