"""Subprocess resource limits for external tools.

Provides `preexec_fn`-compatible callables that set hard resource limits
on child processes before exec. The wall-clock timeout passed to
subprocess.run() is the primary guard; rlimits cap CPU and address
space for tools that misbehave within that budget.

Profiles:
  - default: 4 GB address-space cap. Used for git, oras, cosign and go.
  - jvm: 12 GB address-space cap. sonar-scanner starts a JVM whose
    virtual mappings exceed 4 GB long before physical memory is short.

Environment overrides:
  - COVPROC_RLIMIT_AS_BYTES: integer bytes for the default profile
  - COVPROC_RLIMIT_AS_BYTES_JVM: integer bytes for the jvm profile
  - COVPROC_RLIMIT_CPU_SECONDS: integer seconds for the CPU limit

A memory value of 0 or less skips RLIMIT_AS for that profile.
On Windows the `resource` module is unavailable and limits are a no-op.
"""

import functools
import logging
import os
import sys
from typing import Callable, Optional

logger = logging.getLogger(__name__)

_DEFAULT_MEM_LIMIT_BYTES = 4 * 1024 * 1024 * 1024   # 4 GB
_DEFAULT_JVM_MEM_LIMIT_BYTES = 12 * 1024 * 1024 * 1024  # 12 GB
_DEFAULT_CPU_LIMIT_SECONDS = 600

_MEM_LIMIT_ENV = "COVPROC_RLIMIT_AS_BYTES"
_JVM_MEM_LIMIT_ENV = "COVPROC_RLIMIT_AS_BYTES_JVM"
_CPU_LIMIT_ENV = "COVPROC_RLIMIT_CPU_SECONDS"

PROFILE_DEFAULT = "default"
PROFILE_JVM = "jvm"


def _parse_optional_positive_int(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    value = int(raw.strip())
    if value <= 0:
        return 0
    return value


def resolve_memory_limit_bytes(profile: str = PROFILE_DEFAULT) -> Optional[int]:
    if profile == PROFILE_JVM:
        jvm_override = _parse_optional_positive_int(os.environ.get(_JVM_MEM_LIMIT_ENV))
        if jvm_override is not None:
            return jvm_override
        return _DEFAULT_JVM_MEM_LIMIT_BYTES

    base_override = _parse_optional_positive_int(os.environ.get(_MEM_LIMIT_ENV))
    if base_override is not None:
        return base_override
    return _DEFAULT_MEM_LIMIT_BYTES


def resolve_cpu_limit_seconds() -> int:
    raw = os.environ.get(_CPU_LIMIT_ENV)
    if not raw:
        return _DEFAULT_CPU_LIMIT_SECONDS
    parsed = int(raw.strip())
    if parsed <= 0:
        return _DEFAULT_CPU_LIMIT_SECONDS
    return parsed


def apply_resource_limits(profile: str = PROFILE_DEFAULT) -> None:
    """Set per-process resource limits before exec. No-op on Windows.

    Runs in the child after fork() and before exec().
    """
    if sys.platform == "win32":
        return

    try:
        import resource

        mem_limit = resolve_memory_limit_bytes(profile)
        if mem_limit and mem_limit > 0:
            resource.setrlimit(resource.RLIMIT_AS, (mem_limit, resource.RLIM_INFINITY))

        cpu_limit = resolve_cpu_limit_seconds()
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_limit, resource.RLIM_INFINITY))

    except (ImportError, ValueError, OSError) as exc:
        logger.warning("Failed to apply resource limits: %s", exc)


def resource_limiter(profile: str = PROFILE_DEFAULT) -> Callable[[], None]:
    """Return a zero-argument preexec_fn bound to a profile."""
    return functools.partial(apply_resource_limits, profile)
