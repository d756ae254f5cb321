"""Pluggable action executors.

An executor turns a job's opaque action descriptor into a unit of work.
The engine only relies on ``ActionExecutor.run``: returning means
success, raising means failure. Timeouts are enforced by the caller.

Example:
    executor = CommandExecutor()
    output = await executor.run("echo hello")
"""

import asyncio
import logging
import random
import shlex
from abc import ABC, abstractmethod
from typing import Any

from tickcron.cron.errors import ExecutionFailure

logger = logging.getLogger(__name__)

# Maximum stderr characters kept in a failure message
_STDERR_TAIL = 500


class ActionExecutor(ABC):
    """Base class for action executors."""

    @abstractmethod
    async def run(self, action: str) -> Any:
        """Execute an action.

        Args:
            action: The job's action descriptor.

        Returns:
            The result payload.

        Raises:
            ExecutionFailure: If the action reports an error.
        """

    async def shutdown(self) -> None:
        """Release any resources held by in-flight actions."""


class SimulatedExecutor(ActionExecutor):
    """Stand-in executor that sleeps a random duration and sometimes fails.

    Useful for demos; it never touches the operating system.
    """

    def __init__(
        self,
        min_delay: float = 0.5,
        max_delay: float = 3.0,
        failure_rate: float = 0.1,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the simulated executor.

        Args:
            min_delay: Minimum duration in seconds.
            max_delay: Maximum duration in seconds.
            failure_rate: Probability (0-1) that a run fails.
            rng: Random source, for reproducible runs.
        """
        if min_delay < 0 or max_delay < min_delay:
            raise ValueError("Invalid delay range")
        if not 0 <= failure_rate <= 1:
            raise ValueError("failure_rate must be between 0 and 1")
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._failure_rate = failure_rate
        self._rng = rng or random.Random()

    async def run(self, action: str) -> Any:
        delay = self._rng.uniform(self._min_delay, self._max_delay)
        await asyncio.sleep(delay)
        if self._rng.random() < self._failure_rate:
            raise ExecutionFailure(f"Simulated failure: {action}")
        return f"Executed: {action}"


class StubExecutor(ActionExecutor):
    """Deterministic executor with a fixed duration and outcome."""

    def __init__(
        self,
        delay: float = 0.0,
        result: Any = "ok",
        error: str | None = None,
    ) -> None:
        self.delay = delay
        self.result = result
        self.error = error
        self.calls: list[str] = []

    async def run(self, action: str) -> Any:
        self.calls.append(action)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise ExecutionFailure(self.error)
        return self.result


class CommandExecutor(ActionExecutor):
    """Runs actions as commands, through the shell by default.

    The result is the command's stripped stdout. A non-zero exit status
    raises ``ExecutionFailure`` carrying the exit code and stderr tail.
    """

    def __init__(
        self,
        shell: bool = True,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize the command executor.

        Args:
            shell: Run actions through the shell. Otherwise the action is
                split with shell quoting rules and executed directly.
            cwd: Working directory for commands.
            env: Environment for commands (defaults to the current one).
        """
        self._shell = shell
        self._cwd = cwd
        self._env = env
        self._processes: set[asyncio.subprocess.Process] = set()

    async def run(self, action: str) -> Any:
        logger.debug(f"Running command: {action}")
        options = {
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
            "cwd": self._cwd,
            "env": self._env,
        }
        if self._shell:
            process = await asyncio.create_subprocess_shell(action, **options)
        else:
            argv = shlex.split(action)
            if not argv:
                raise ExecutionFailure("Empty command")
            try:
                process = await asyncio.create_subprocess_exec(*argv, **options)
            except FileNotFoundError:
                raise ExecutionFailure(f"Command not found: {argv[0]}")
        self._processes.add(process)
        try:
            stdout, stderr = await process.communicate()
        finally:
            self._processes.discard(process)

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()[-_STDERR_TAIL:]
            message = f"Command exited with status {process.returncode}"
            if detail:
                message = f"{message}: {detail}"
            raise ExecutionFailure(message)

        return stdout.decode(errors="replace").strip()

    async def shutdown(self) -> None:
        for process in list(self._processes):
            if process.returncode is None:
                logger.warning(f"Killing lingering command (pid {process.pid})")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
        self._processes.clear()


def create_executor(kind: str, **options: Any) -> ActionExecutor:
    """Build an executor by name.

    Args:
        kind: One of ``command``, ``simulated`` or ``stub``.
        **options: Constructor arguments for the executor.

    Returns:
        The executor instance.

    Raises:
        ValueError: If the kind is unknown.
    """
    executors: dict[str, type[ActionExecutor]] = {
        "command": CommandExecutor,
        "simulated": SimulatedExecutor,
        "stub": StubExecutor,
    }
    executor_cls = executors.get(kind)
    if executor_cls is None:
        raise ValueError(f"Unknown executor kind: {kind}")
    return executor_cls(**options)
