"""Evaluators turn a command template plus captures into a name.

Implementations:
- ShellEvaluator: runs the expanded command with /bin/sh, bounded by a timeout
- MockEvaluator: in-memory responses, never spawns a process
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping

from cgroup_exporter.core.constants import DEFAULT_SHELL_TIMEOUT_SECONDS
from cgroup_exporter.core.errors import EvaluationError
from cgroup_exporter.naming.rules import OutputStream
from cgroup_exporter.naming.template import render_template

logger = logging.getLogger(__name__)


class Evaluator(ABC):
    """Synchronous command-template evaluation capability."""

    @abstractmethod
    def evaluate(
        self,
        command_template: str,
        variables: Mapping[str, str],
        output: OutputStream = OutputStream.STDOUT,
    ) -> str:
        """Expand `command_template` with `variables` and evaluate it.

        Args:
            command_template: Command with `{name}` placeholders
            variables: Capture Set used for expansion
            output: Stream whose content is returned

        Returns:
            Selected output, trailing whitespace removed

        Raises:
            EvaluationError: On any failure
        """
        pass


class ShellEvaluator(Evaluator):
    """Evaluator that executes commands in a child shell.

    The caller blocks until the child exits. A child still running after
    `timeout_seconds` is killed together with everything it spawned and
    reported as an EvaluationError.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_SHELL_TIMEOUT_SECONDS) -> None:
        self._timeout_seconds = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    def evaluate(
        self,
        command_template: str,
        variables: Mapping[str, str],
        output: OutputStream = OutputStream.STDOUT,
    ) -> str:
        command = render_template(command_template, variables)
        logger.debug(f"Evaluating shell command: {command!r}")
        started = time.monotonic()

        try:
            # Own session so the whole group (shell and its children) can be killed
            proc = subprocess.Popen(
                command,
                shell=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise EvaluationError("Failed to launch command", command) from e

        try:
            stdout, stderr = proc.communicate(timeout=self._timeout_seconds)
        except subprocess.TimeoutExpired as e:
            _kill_process_group(proc)
            logger.warning(
                f"Shell command timed out after {self._timeout_seconds}s: {command!r}"
            )
            raise EvaluationError(
                f"Command timed out after {self._timeout_seconds}s", command
            ) from e
        except BaseException:
            _kill_process_group(proc)
            raise

        elapsed = time.monotonic() - started
        logger.debug(f"Shell command exited with {proc.returncode} after {elapsed:.3f}s")

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise EvaluationError(
                f"Command exited with status {proc.returncode} (stderr: {message!r})",
                command,
            )

        raw = stdout if output == OutputStream.STDOUT else stderr
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise EvaluationError(f"Command {output.value} is not valid UTF-8", command) from e

        return text.rstrip()


def _kill_process_group(proc: subprocess.Popen) -> None:
    """SIGKILL every process in the child's session, then reap the shell."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    # Drains the pipes; grandchildren holding them open are dead by now
    proc.communicate()


class MockEvaluator(Evaluator):
    """Deterministic evaluator for tests.

    Expanded commands found in `responses` return the mapped value, commands
    in `failures` raise EvaluationError, anything else echoes the expanded
    command. Every expanded command is recorded in `calls`.
    """

    def __init__(
        self,
        responses: Mapping[str, str] | None = None,
        failures: set[str] | None = None,
    ) -> None:
        self._responses = dict(responses or {})
        self._failures = set(failures or ())
        self.calls: list[tuple[str, OutputStream]] = []

    def evaluate(
        self,
        command_template: str,
        variables: Mapping[str, str],
        output: OutputStream = OutputStream.STDOUT,
    ) -> str:
        command = render_template(command_template, variables)
        self.calls.append((command, output))
        if command in self._failures:
            raise EvaluationError("Mock evaluation failure", command)
        return self._responses.get(command, command).rstrip()
