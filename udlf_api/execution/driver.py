"""Runs the UDLF binary on a config and collects its output."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..errors import ExecutionFailed, PermissionDenied, SpawnError
from .rewriter import PathRewriter, remove_scratch

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
MAX_LOGGED_LINE = 4096


@dataclass
class ExecutionResult:
    """Captured output of a successful run."""

    stdout: str
    stderr: str
    exit_code: int = 0


async def _drain(stream: asyncio.StreamReader, name: str, sink: List[bytes]) -> None:
    """Read a pipe until EOF, logging complete lines as they arrive.

    Logged lines are cut at ``MAX_LOGGED_LINE`` bytes; ``sink`` gets everything.
    """
    pending = bytearray()
    while True:
        chunk = await stream.read(READ_CHUNK)
        if not chunk:
            break
        sink.append(chunk)

        head, newline, tail = chunk.rpartition(b"\n")
        if not newline:
            if len(pending) < MAX_LOGGED_LINE:
                pending.extend(tail[:MAX_LOGGED_LINE - len(pending)])
            continue

        for line in (bytes(pending) + head).split(b"\n"):
            _log_line(name, line)
        pending = bytearray(tail[:MAX_LOGGED_LINE])

    if pending:
        _log_line(name, pending)


def _log_line(name: str, line: bytes) -> None:
    text = bytes(line[:MAX_LOGGED_LINE]).decode("utf-8", errors="replace").rstrip()
    logger.debug(f"[{name}] {text}")


class ExecutionDriver:
    """Spawns the binary with the prepared config inside the outputs directory."""

    def __init__(
        self,
        executable: Path,
        outputs_dir: Path,
        rewriter: PathRewriter,
        kill_grace_seconds: float = 5.0,
    ):
        self.executable = Path(executable)
        self.outputs_dir = Path(outputs_dir)
        self.rewriter = rewriter
        self.kill_grace_seconds = kill_grace_seconds

    async def execute(self, config_path: Path) -> ExecutionResult:
        """
        Run the binary on a config.

        Order is fixed: rewrite, spawn, drain both pipes, wait, clean up.
        Cancelling the awaiting task terminates the child (then kills it if
        it does not exit within ``kill_grace_seconds``).

        Args:
            config_path: Uploaded config file

        Returns:
            ExecutionResult with both streams

        Raises:
            SpawnError: the binary could not be started
            ExecutionFailed: the binary exited with a non-zero code
        """
        # Blob downloads block, keep them off the event loop
        preparing = asyncio.ensure_future(asyncio.to_thread(self.rewriter.prepare, Path(config_path)))
        try:
            prepared = await asyncio.shield(preparing)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; its scratch dir is still ours
            await asyncio.wait({preparing})
            if not preparing.cancelled() and preparing.exception() is None:
                remove_scratch(preparing.result().scratch_dir)
            raise

        try:
            return await self._run(prepared.config_path)
        finally:
            remove_scratch(prepared.scratch_dir)

    async def _run(self, config_path: Path) -> ExecutionResult:
        self.outputs_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Executing {self.executable} {config_path} (cwd={self.outputs_dir})")

        try:
            process = await asyncio.create_subprocess_exec(
                str(self.executable),
                str(config_path),
                cwd=str(self.outputs_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Failed to start {self.executable}: {e}")
            raise SpawnError(f"Failed to execute {self.executable}: {e}") from e

        out: List[bytes] = []
        err: List[bytes] = []
        try:
            await asyncio.gather(
                _drain(process.stdout, "stdout", out),
                _drain(process.stderr, "stderr", err),
            )
            exit_code = await process.wait()
        except asyncio.CancelledError:
            await self._stop(process)
            raise

        stdout = b"".join(out).decode("utf-8", errors="replace")
        stderr = b"".join(err).decode("utf-8", errors="replace")

        if exit_code != 0:
            logger.error(f"Execution failed with return code {exit_code}")
            raise ExecutionFailed(exit_code, stdout, stderr)

        logger.info(f"Execution completed ({len(stdout)} bytes stdout, {len(stderr)} bytes stderr)")
        return ExecutionResult(stdout=stdout, stderr=stderr, exit_code=exit_code)

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        logger.warning(f"Execution cancelled, terminating pid {process.pid}")
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"pid {process.pid} still running, killing")
            try:
                process.kill()
            except ProcessLookupError:
                return
            await process.wait()


class ExecutionService:
    """Resolves an uploaded config by name and runs it."""

    def __init__(self, driver: ExecutionDriver, datasets, allowlist=None):
        """
        Args:
            driver: ExecutionDriver to run configs with
            datasets: DatasetService resolving config names
            allowlist: When given, local dataset paths must be inside it
        """
        self.driver = driver
        self.datasets = datasets
        self.allowlist = allowlist

    def _check_dataset_paths(self, config_path: Path) -> None:
        paths = self.datasets.dataset_paths(config_path)
        for value in (paths.dataset_list, paths.class_list, paths.images_dir, paths.input_file):
            if value and Path(value).is_absolute() and not self.allowlist.is_allowed(value):
                raise PermissionDenied(f"Dataset path not allowed: {value}")

    async def execute(self, config_name: str) -> ExecutionResult:
        config_path = self.datasets.config_path(config_name)
        # A re-uploaded config with the same name must be read again
        self.datasets.clear_cache(config_path)
        self.datasets.load_config(config_path)

        if self.allowlist is not None:
            self._check_dataset_paths(config_path)

        return await self.driver.execute(config_path)
