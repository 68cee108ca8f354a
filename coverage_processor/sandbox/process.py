"""Single entry point for running external tools.

Every oras, cosign, git, go and sonar-scanner invocation goes through
run_tool() so that timeouts, rlimits and output capture are uniform.
A non-zero exit is returned to the caller, which owns the translation
into the error taxonomy; only timeouts are translated here.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence

from coverage_processor.errors import StepTimeoutError
from coverage_processor.sandbox.limits import PROFILE_DEFAULT, resource_limiter

logger = logging.getLogger(__name__)


def run_tool(
    cmd: Sequence[str],
    *,
    timeout: int,
    cwd: Optional[Path] = None,
    env: Optional[dict] = None,
    profile: str = PROFILE_DEFAULT,
    display: Optional[str] = None,
) -> subprocess.CompletedProcess:
    """Run a tool to completion and return the captured result.

    display replaces the command in log lines and errors when the argv
    carries something that must not be logged.

    Raises:
        StepTimeoutError: If the tool exceeds its wall-clock budget.
        FileNotFoundError: If the tool binary is not installed.
    """
    shown = display or " ".join(cmd)
    logger.debug("Running %s (cwd=%s, timeout=%ds)", shown, cwd, timeout)

    try:
        return subprocess.run(
            list(cmd),
            cwd=str(cwd) if cwd else None,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            preexec_fn=resource_limiter(profile),
        )
    except subprocess.TimeoutExpired as exc:
        raise StepTimeoutError(
            f"{cmd[0]} did not finish within {timeout}s: {shown}"
        ) from exc


def tail(text: str, limit: int = 2000) -> str:
    """Return the last `limit` characters of tool output for error messages."""
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]
