"""Process-based adapter — runs an external analyzer binary under a timeout.

The child and every process it spawned (slither runs solc, mythril runs
solc and z3) are killed when the scope exits, whether the tool finished,
timed out, or the surrounding task was cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import psutil

from chainaudit.analysis.models import AnalysisResult, Finding
from chainaudit.analysis.source import line_count
from chainaudit.errors import ToolExecutionError

logger = logging.getLogger(__name__)

_STDERR_EXCERPT = 300


def kill_process_tree(pid: int) -> None:
    """Kill a process and all of its descendants, children first."""
    try:
        parent = psutil.Process(pid)
        procs = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        return
    procs.append(parent)
    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning("Permission denied killing process %d", proc.pid)


@asynccontextmanager
async def spawn(
    command: list[str],
    cwd: Path,
) -> AsyncIterator[asyncio.subprocess.Process]:
    """Start a subprocess and guarantee its teardown on every exit path."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
        )
    except OSError as e:
        raise ToolExecutionError(f"failed to launch {command[0]}: {e}") from e

    try:
        yield proc
    finally:
        if proc.returncode is None:
            logger.debug("Killing %s (pid %d)", command[0], proc.pid)
            kill_process_tree(proc.pid)
            await proc.wait()


class ProcessAdapter:
    """Base class for analyzers that run as an external process.

    Subclasses set ``name`` and ``default_executable`` and implement
    :meth:`command` and :meth:`parse`.
    """

    name: str = ""
    default_executable: str = ""

    def __init__(self, executable: str | None = None) -> None:
        self.executable = executable or self.default_executable

    def is_available(self) -> bool:
        return bool(self.executable) and shutil.which(self.executable) is not None

    def command(self, contract_path: Path) -> list[str]:
        raise NotImplementedError

    def parse(self, output: str, source: str) -> list[Finding]:
        """Translate raw tool output into findings. Raise ToolExecutionError."""
        raise NotImplementedError

    async def run(self, source: str, timeout: float) -> AnalysisResult:
        if not self.is_available():
            logger.warning("Tool %s unavailable (%s not found)", self.name, self.executable)
            return AnalysisResult.failure(self.name, "tool unavailable")

        start = time.monotonic()
        try:
            output = await self._execute(source, timeout)
            findings = self.parse(output, source)
        except asyncio.TimeoutError:
            logger.warning("Tool %s timed out after %.1fs", self.name, timeout)
            return AnalysisResult.failure(
                self.name,
                f"timed out after {timeout:g}s",
                duration=time.monotonic() - start,
            )
        except ToolExecutionError as e:
            logger.warning("Tool %s failed: %s", self.name, e)
            return AnalysisResult.failure(
                self.name, str(e), duration=time.monotonic() - start
            )

        duration = time.monotonic() - start
        logger.debug("Tool %s: %d findings in %.2fs", self.name, len(findings), duration)
        return AnalysisResult(tool=self.name, findings=tuple(findings), duration=duration)

    async def _execute(self, source: str, timeout: float) -> str:
        with tempfile.TemporaryDirectory(prefix="chainaudit-") as tmp:
            workdir = Path(tmp)
            contract_path = workdir / "Contract.sol"
            contract_path.write_text(source, encoding="utf-8")

            async with spawn(self.command(contract_path), workdir) as proc:
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)

        output = stdout.decode("utf-8", errors="replace")
        # Analyzers commonly exit non-zero when they report issues, so the
        # exit code only matters when there is nothing to parse.
        if proc.returncode != 0 and not output.strip():
            excerpt = stderr.decode("utf-8", errors="replace").strip()[:_STDERR_EXCERPT]
            raise ToolExecutionError(
                f"{self.executable} exited with status {proc.returncode}: {excerpt}"
            )
        return output


def valid_lines(lines: list[int], source: str) -> tuple[int, ...]:
    """Drop line numbers outside [1, line_count(source)]."""
    upper = line_count(source)
    return tuple(n for n in lines if isinstance(n, int) and 1 <= n <= upper)
