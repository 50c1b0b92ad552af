"""External tool invocation seam.

Every component talks to ``codesign``, ``xcrun`` and friends through a
``ToolRunner``. The default ``SubprocessToolRunner`` shells out; tests inject
scripted fakes that implement the same ``run()`` signature.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

# Flags whose following argument must never reach the logs
_SECRET_FLAGS = frozenset({"--password"})


class ToolUnavailableError(RuntimeError):
    """Raised when the requested program is not installed."""


class ToolResult(BaseModel):
    """Exit status and captured output of one tool invocation."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def diagnostic(self) -> str:
        """stderr if present, else stdout (codesign writes to stderr)."""
        return (self.stderr or self.stdout).strip()


class ToolRunner(Protocol):
    def run(
        self, args: Sequence[str | Path], *, cwd: Path | None = None
    ) -> ToolResult: ...


def redact(args: Sequence[str | Path]) -> list[str]:
    """Return ``args`` as strings with secret flag values masked."""
    out: list[str] = []
    hide_next = False
    for arg in args:
        text = str(arg)
        out.append("******" if hide_next else text)
        hide_next = text in _SECRET_FLAGS
    return out


class SubprocessToolRunner:
    """Runs tools with ``subprocess.run``, capturing text output.

    Parameters
    ----------
    timeout:
        Per-invocation timeout in seconds, or None for no limit.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._timeout = timeout

    def run(
        self, args: Sequence[str | Path], *, cwd: Path | None = None
    ) -> ToolResult:
        argv = [str(a) for a in args]
        logger.debug("$ %s", " ".join(redact(argv)))
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self._timeout,
            )
        except FileNotFoundError as exc:
            raise ToolUnavailableError(f"{argv[0]} is not installed") from exc
        if proc.returncode != 0:
            logger.debug("%s exited %d: %s", argv[0], proc.returncode, proc.stderr.strip())
        return ToolResult(
            exit_code=proc.returncode, stdout=proc.stdout, stderr=proc.stderr
        )
