"""
Process Runner — the one place the protocol starts external processes.

The repository gate and the test step both go through a ``ProcessRunner``,
so tests can swap in a scripted fake instead of shelling out.
"""

import logging
import shlex
import subprocess
import time
from typing import List, Optional, Protocol, Sequence

from change_safety.models.execution import CommandResult

logger = logging.getLogger(__name__)


def parse_command(cmd: str) -> List[str]:
    return shlex.split(cmd)


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class ProcessRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        cwd: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """Runs commands with ``subprocess.run``. Never raises for process failures."""

    def run(
        self,
        argv: Sequence[str],
        cwd: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv_list = list(argv)
        logger.debug("CMD %s (cwd=%s)", format_argv(argv_list), cwd)
        start = time.monotonic()

        try:
            p = subprocess.run(
                argv_list,
                cwd=cwd,
                encoding="utf-8",
                errors="replace",
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning("Command timed out after %ss: %s", timeout, format_argv(argv_list))
            return CommandResult(
                argv=argv_list,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr),
                timed_out=True,
                duration_seconds=round(time.monotonic() - start, 3),
            )
        except OSError as e:
            logger.warning("Could not start %s: %s", argv_list[0] if argv_list else "", e)
            return CommandResult(
                argv=argv_list,
                error=str(e),
                duration_seconds=round(time.monotonic() - start, 3),
            )

        if p.stdout:
            logger.debug("STDOUT %s", p.stdout.strip())
        if p.stderr:
            logger.debug("STDERR %s", p.stderr.strip())

        return CommandResult(
            argv=argv_list,
            returncode=p.returncode,
            stdout=p.stdout,
            stderr=p.stderr,
            duration_seconds=round(time.monotonic() - start, 3),
        )


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output
