"""External command execution.

Every call to ``kubectl``, ``helm``, ``systemctl``, ``k3d`` and friends goes
through :class:`CommandRunner`, which captures output, enforces a timeout and
merges a base environment (typically ``KUBECONFIG``) into the child process
without touching ``os.environ``.
"""
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from .errors import CommandError

logger = logging.getLogger("rfbootstrap.runner")

MISSING_BINARY_EXIT = 127


@dataclass
class CommandResult:
    """Outcome of a single external command."""
    cmd: List[str]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class CommandRunner:
    """Runs external processes with a shared environment and default timeout."""

    def __init__(self, env: Optional[Mapping[str, str]] = None, timeout: Optional[int] = 600):
        self.env: Dict[str, str] = dict(env or {})
        self.timeout = timeout

    def with_env(self, **extra: str) -> "CommandRunner":
        """Return a runner whose base environment also contains ``extra``."""
        merged = dict(self.env)
        merged.update(extra)
        return CommandRunner(env=merged, timeout=self.timeout)

    def which(self, tool: str) -> Optional[str]:
        return shutil.which(tool)

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = False,
        capture: bool = True,
        timeout: Optional[int] = None,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[str] = None,
        cwd: Optional[Union[str, Path]] = None,
    ) -> CommandResult:
        cmd = [str(part) for part in cmd]
        cmd_str = ' '.join(cmd)
        logger.debug(f"💻 Running: {cmd_str}")

        child_env = dict(os.environ)
        child_env.update(self.env)
        if env:
            child_env.update(env)

        try:
            completed = subprocess.run(
                cmd,
                text=True,
                input=input,
                cwd=str(cwd) if cwd else None,
                env=child_env,
                timeout=timeout if timeout is not None else self.timeout,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.PIPE if capture else None,
            )
            result = CommandResult(cmd, completed.returncode, completed.stdout or "", completed.stderr or "")
        except FileNotFoundError:
            result = CommandResult(cmd, MISSING_BINARY_EXIT, "", f"{cmd[0]}: command not found")
        except subprocess.TimeoutExpired as e:
            result = CommandResult(cmd, None, _text(e.stdout), _text(e.stderr), timed_out=True)

        if capture and result.stdout:
            logger.debug(f"🟢 Output:\n{result.stdout}")

        if not result.ok:
            logger.debug(f"Command exited with {result.returncode}: {cmd_str}")
            if check:
                raise CommandError(cmd, result.returncode, result.stdout, result.stderr, result.timed_out)
        return result


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value
