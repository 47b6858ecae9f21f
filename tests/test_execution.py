import asyncio
import sys
import time
from pathlib import Path
from typing import List, Sequence

import pytest

from scriptplate import (
    DependencySpec,
    ExecutableReference,
    ExecutionError,
    Template,
    UnresolvedPlaceholderError,
)
from scriptplate.services.backends import (
    ExecutionBackend,
    UvScriptBackend,
    VenvBackend,
    get_backend,
    run_process,
)
from scriptplate.core.settings import get_settings


class CurrentPythonBackend(ExecutionBackend):
    """Runs programs with the test interpreter; dependencies are recorded only."""

    name = "current"

    def __init__(self, work_root: Path) -> None:
        super().__init__(work_root=work_root)
        self.programs: List[Path] = []

    def materialize(self, workdir: Path, source: str, dependencies: Sequence[DependencySpec]) -> Path:
        program = workdir / "program.py"
        program.write_text(source, encoding="utf-8")
        self.programs.append(program)
        return program

    async def run_program(self, workdir: Path, program: Path, dependencies: Sequence[DependencySpec]) -> str:
        result = await run_process([sys.executable, str(program)], workdir, "run")
        return self._check(result, "run").stdout


class SpyBackend(ExecutionBackend):
    name = "spy"

    def __init__(self) -> None:
        super().__init__()
        self.calls = 0

    def materialize(self, workdir, source, dependencies):
        raise AssertionError("materialize should not be reached")

    async def run_program(self, workdir, program, dependencies):
        raise AssertionError("run_program should not be reached")

    async def run(self, source, dependencies=(), timeout=None):
        self.calls += 1
        return await super().run(source, dependencies, timeout)


def _reference(text: str, backend: ExecutionBackend, **kwargs) -> ExecutableReference:
    return ExecutableReference(Template.from_text(text), backend=backend, **kwargs)


def test_execute_returns_exact_stdout(tmp_path):
    backend = CurrentPythonBackend(tmp_path)
    reference = _reference("import sys\nsys.stdout.write({{message}})\n", backend)
    reference.template.set("message", repr("fixed output"))

    assert asyncio.run(reference.execute()) == "fixed output"
    assert list(tmp_path.iterdir()) == []


def test_render_failure_never_reaches_backend(tmp_path):
    backend = SpyBackend()
    reference = _reference("print({{x}})", backend)
    with pytest.raises(UnresolvedPlaceholderError):
        asyncio.run(reference.execute())
    assert backend.calls == 0

    venv_backend = VenvBackend(work_root=tmp_path)
    with pytest.raises(UnresolvedPlaceholderError):
        asyncio.run(_reference("print({{x}})", venv_backend).execute())
    assert list(tmp_path.iterdir()) == []


def test_non_zero_exit_raises_with_stderr(tmp_path):
    backend = CurrentPythonBackend(tmp_path)
    reference = _reference("raise SystemExit('boom')", backend)
    with pytest.raises(ExecutionError) as info:
        asyncio.run(reference.execute())
    assert info.value.returncode == 1
    assert info.value.stage == "run"
    assert "boom" in info.value.stderr
    assert list(tmp_path.iterdir()) == []


def test_stdin_is_disconnected(tmp_path):
    backend = CurrentPythonBackend(tmp_path)
    reference = _reference("import sys\nprint(repr(sys.stdin.read()))", backend)
    assert asyncio.run(reference.execute()).strip() == "''"


def test_timeout_kills_process_and_cleans_up(tmp_path):
    backend = CurrentPythonBackend(tmp_path)
    reference = _reference("import time\ntime.sleep(30)", backend, timeout=0.5)
    with pytest.raises(ExecutionError) as info:
        asyncio.run(reference.execute())
    assert info.value.stage == "timeout"
    assert list(tmp_path.iterdir()) == []


def test_each_call_uses_a_fresh_directory(tmp_path):
    backend = CurrentPythonBackend(tmp_path)

    async def run_both():
        first = _reference("print('one')", backend)
        second = _reference("print('two')", backend)
        return await asyncio.gather(first.execute(), second.execute())

    assert asyncio.run(run_both()) == ["one\n", "two\n"]
    assert len({program.parent for program in backend.programs}) == 2
    assert list(tmp_path.iterdir()) == []


def test_execute_rerenders_current_state(tmp_path):
    backend = CurrentPythonBackend(tmp_path)
    reference = _reference("print({{n}})", backend)
    reference.template.set("n", "1")
    assert asyncio.run(reference.execute()) == "1\n"
    reference.template.set("n", "2")
    assert asyncio.run(reference.execute()) == "2\n"


def test_missing_toolchain_is_an_execution_error(tmp_path):
    backend = UvScriptBackend(uv_path=str(tmp_path / "no-such-uv"), work_root=tmp_path)
    with pytest.raises(ExecutionError) as info:
        asyncio.run(_reference("print(1)", backend).execute())
    assert "Toolchain not found" in str(info.value)
    assert list(tmp_path.iterdir()) == []


def test_venv_backend_runs_without_dependencies(tmp_path):
    backend = VenvBackend(python=sys.executable, work_root=tmp_path)
    reference = _reference("import sys\nsys.stdout.write('from venv')", backend, timeout=120)
    assert asyncio.run(reference.execute()) == "from venv"
    assert list(tmp_path.iterdir()) == []


def test_venv_backend_writes_requirements_manifest(tmp_path):
    backend = VenvBackend()
    deps = [DependencySpec.parse("rich=13.7.1"), DependencySpec.parse("attrs=*")]
    program = backend.materialize(tmp_path, "print(1)", deps)
    assert program.read_text(encoding="utf-8") == "print(1)"
    lines = (tmp_path / "requirements.txt").read_text(encoding="utf-8").split()
    assert lines == ["rich==13.7.1", "attrs"]


def test_uv_script_has_inline_metadata(tmp_path):
    backend = UvScriptBackend(requires_python=">=3.10")
    deps = [DependencySpec.parse("requests=2.31.0"), DependencySpec.parse("requests=>=2")]
    script = backend.render_script("print('hi')\n", deps)
    assert script == (
        "# /// script\n"
        '# requires-python = ">=3.10"\n'
        "# dependencies = [\n"
        '#   "requests==2.31.0",\n'
        '#   "requests>=2",\n'
        "# ]\n"
        "# ///\n"
        "print('hi')\n\n"
    )

    program = backend.materialize(tmp_path, "print('hi')\n", deps)
    assert program.name.startswith("script_")
    assert backend.command(program)[-2:] == ["--script", str(program)]


def test_get_backend_follows_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("SCRIPTPLATE_BACKEND", "venv")
    monkeypatch.setenv("SCRIPTPLATE_WORK_ROOT", str(tmp_path))
    get_settings.cache_clear()

    backend = get_backend()
    assert isinstance(backend, VenvBackend)
    assert backend.work_root == tmp_path.resolve()
    assert isinstance(get_backend("uv"), UvScriptBackend)
    with pytest.raises(ValueError):
        get_backend("cargo")


SPAWNS_GRANDCHILD = """\
import subprocess
import sys
import time
import time

code = "import pathlib, time; time.sleep(2); pathlib.Path(" + repr({{marker}}) + ").write_text('late')"
subprocess.Popen([sys.executable, "-c", code])
time.sleep(30)
"""


def test_timeout_kills_processes_started_by_the_child(tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    marker = tmp_path / "marker.txt"
    reference = _reference(SPAWNS_GRANDCHILD, CurrentPythonBackend(work), timeout=1.0)
    reference.template.set("marker", repr(str(marker)))

    with pytest.raises(ExecutionError):
        asyncio.run(reference.execute())
    time.sleep(3)
    assert not marker.exists()
    assert list(work.iterdir()) == []


def test_cancellation_kills_process_and_cleans_up(tmp_path):
    work = tmp_path / "work"
    work.mkdir()
    started = tmp_path / "started.txt"
    finished = tmp_path / "finished.txt"
    source = (
        "import pathlib, time\n"
        "pathlib.Path({{started}}).write_text('up')\n"
        "time.sleep(3)\n"
        "pathlib.Path({{finished}}).write_text('done')\n"
    )
    reference = _reference(source, CurrentPythonBackend(work), timeout=None)
    reference.template.set("started", repr(str(started)))
    reference.template.set("finished", repr(str(finished)))

    async def cancel_once_running():
        task = asyncio.create_task(reference.execute())
        for _ in range(200):
            if started.exists():
                break
            await asyncio.sleep(0.05)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(cancel_once_running())
    assert started.exists()
    assert list(work.iterdir()) == []
    time.sleep(4)
    assert not finished.exists()


def test_zero_timeout_means_no_timeout(tmp_path):
    backend = CurrentPythonBackend(tmp_path)
    reference = _reference("import time\ntime.sleep(0.2)\nprint('done')", backend, timeout=0)
    assert reference.timeout is None
    assert asyncio.run(reference.execute()) == "done\n"
