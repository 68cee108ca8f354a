"""Git checkout of the resolved source.

Clones the repository named by the build provenance and checks out the
exact commit the coverage was collected from. The resulting tree is the
basis for path remapping, so a checkout either matches the commit
exactly or the run fails.

Security:
  - Repository URLs come from attestation annotations, not from an
    operator. They are validated with validate_repo_url() before any
    subprocess is spawned so a crafted annotation cannot make the
    pipeline reach internal network services.
  - Git never prompts for credentials (GIT_TERMINAL_PROMPT=0); a
    repository that requires auth fails fast as unreachable.
"""

import ipaddress
import logging
import os
import re
import socket
from pathlib import Path
from urllib.parse import urlparse, urlunparse

from coverage_processor.errors import CommitNotFoundError, RepositoryUnreachableError
from coverage_processor.sandbox.process import run_tool, tail
from coverage_processor.sandbox.types import MaterializedTree

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# SSRF guard
# ---------------------------------------------------------------------------

# RFC 1918, loopback, link-local, and IPv6 private ranges
_PRIVATE_NETWORKS: list[ipaddress.IPv4Network | ipaddress.IPv6Network] = [
    ipaddress.ip_network("127.0.0.0/8"),       # Loopback (IPv4)
    ipaddress.ip_network("10.0.0.0/8"),         # RFC 1918 private
    ipaddress.ip_network("172.16.0.0/12"),      # RFC 1918 private
    ipaddress.ip_network("192.168.0.0/16"),     # RFC 1918 private
    ipaddress.ip_network("169.254.0.0/16"),     # Link-local / cloud metadata
    ipaddress.ip_network("100.64.0.0/10"),      # Shared address space (RFC 6598)
    ipaddress.ip_network("0.0.0.0/8"),          # "This" network
    ipaddress.ip_network("::1/128"),            # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),           # IPv6 unique-local
    ipaddress.ip_network("fe80::/10"),          # IPv6 link-local
]

# git stderr fragments meaning "the remote is fine, the commit is not there"
_MISSING_COMMIT_MARKERS = (
    "couldn't find remote ref",
    "no such remote ref",
    "not our ref",
    "unadvertised object",
    "reference is not a tree",
    "did not match any",
    "unknown revision",
    "bad object",
)

# Hex object names only. git abbreviates to at least 4 digits; full names
# are 40 (SHA-1) or 64 (SHA-256).
_COMMIT_SHA_RE = re.compile(r"[0-9a-fA-F]{4,64}")
_FULL_SHA_LENGTHS = (40, 64)


class SandboxError(RepositoryUnreachableError):
    """Raised when a repository URL fails the pre-clone security check."""


def redact_repo_url(url: str) -> str:
    """Return a clone URL safe to write into logs.

    Masks embedded credentials while preserving host/path context.
    """
    parsed = urlparse(url)
    if parsed.username is None:
        return url

    host = parsed.hostname or ""
    if not host:
        return url

    port = f":{parsed.port}" if parsed.port else ""
    if parsed.password is not None:
        auth = f"{parsed.username}:***@"
    else:
        auth = "***@"

    redacted_netloc = f"{auth}{host}{port}"
    return urlunparse(parsed._replace(netloc=redacted_netloc))


def validate_repo_url(url: str) -> None:
    """Validate a repository URL before cloning.

    Blocks:
      - Non-HTTPS schemes (http://, git://, file://, ssh://, etc.)
      - Hostnames that resolve to any private, loopback, or link-local IP

    Raises:
        SandboxError: If the URL is invalid or resolves to a private address.
    """
    if not url:
        raise SandboxError("Repository URL must not be empty")

    parsed = urlparse(url)
    safe_url = redact_repo_url(url)

    if parsed.scheme != "https":
        raise SandboxError(
            f"Repository URL must use HTTPS (got scheme '{parsed.scheme}'): {safe_url}"
        )

    hostname = parsed.hostname
    if not hostname:
        raise SandboxError(f"Repository URL has no hostname: {safe_url}")

    try:
        addr_infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror as exc:
        raise SandboxError(
            f"Cannot resolve hostname '{hostname}': {exc}"
        ) from exc

    for _family, _type, _proto, _canonname, sockaddr in addr_infos:
        ip_str = sockaddr[0]
        try:
            ip = ipaddress.ip_address(ip_str)
        except ValueError:
            continue

        for private_net in _PRIVATE_NETWORKS:
            if ip in private_net:
                raise SandboxError(
                    f"SSRF: repository hostname '{hostname}' resolves to "
                    f"private address {ip} (network {private_net}): {safe_url}"
                )

    logger.debug("URL validation passed: %s", safe_url)


# ---------------------------------------------------------------------------
# Checkout helpers
# ---------------------------------------------------------------------------


def _git_env() -> dict:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


def _looks_like_missing_commit(stderr: str) -> bool:
    lowered = (stderr or "").lower()
    return any(marker in lowered for marker in _MISSING_COMMIT_MARKERS)


def clone_repo(
    repo_url: str,
    dest: Path,
    depth: int = 1,
    git_bin: str = "git",
    timeout: int = 300,
) -> Path:
    """Clone a repository into dest and return dest.

    depth > 0 makes a shallow clone of the default branch; the target
    commit is fetched separately by checkout_sha(). depth == 0 clones
    the full history.

    Raises:
        RepositoryUnreachableError: URL rejected or clone failed.
    """
    validate_repo_url(repo_url)

    dest.parent.mkdir(parents=True, exist_ok=True)
    safe_url = redact_repo_url(repo_url)

    cmd = [git_bin, "clone", "--quiet"]
    if depth > 0:
        cmd += ["--depth", str(depth)]
    cmd += ["--", repo_url, str(dest)]

    logger.info("Cloning %s into %s (depth=%s)", safe_url, dest, depth or "full")
    result = run_tool(
        cmd,
        timeout=timeout,
        env=_git_env(),
        display=" ".join(cmd).replace(repo_url, safe_url),
    )

    if result.returncode != 0:
        raise RepositoryUnreachableError(
            f"git clone of {safe_url} failed (exit {result.returncode}): "
            f"{tail(result.stderr)}"
        )

    logger.info("Clone complete: %s", dest)
    return dest


def get_head_sha(repo_dir: Path, git_bin: str = "git") -> str:
    """Return the full SHA of the current HEAD commit."""
    result = run_tool(
        [git_bin, "rev-parse", "HEAD"],
        cwd=repo_dir,
        timeout=10,
        env=_git_env(),
    )
    if result.returncode != 0:
        raise CommitNotFoundError(f"git rev-parse HEAD failed: {tail(result.stderr)}")
    return result.stdout.strip()


def is_commit_sha(value: str) -> bool:
    """Return True if value is a full or abbreviated hex commit name."""
    return bool(_COMMIT_SHA_RE.fullmatch(value or ""))


def _require_commit_sha(sha: str) -> None:
    if not is_commit_sha(sha):
        raise CommitNotFoundError(f"Not a commit SHA: {sha[:80]!r}")


def has_commit(repo_dir: Path, sha: str, git_bin: str = "git") -> bool:
    """Return True if the commit object is already present locally."""
    result = run_tool(
        [git_bin, "cat-file", "-e", f"{sha}^{{commit}}"],
        cwd=repo_dir,
        timeout=10,
        env=_git_env(),
    )
    return result.returncode == 0


def _fetch_commit(
    repo_dir: Path,
    sha: str,
    depth: int,
    git_bin: str,
    timeout: int,
) -> None:
    """Bring a missing commit into a clone.

    Remotes only serve full object names, so a full SHA is fetched
    directly and an abbreviated one is looked up after fetching the
    complete history of every branch.
    """
    if len(sha) in _FULL_SHA_LENGTHS:
        fetch_cmd = [git_bin, "fetch", "--quiet"]
        if depth > 0:
            fetch_cmd.append(f"--depth={depth}")
        fetch_cmd += ["--", "origin", sha]
    elif depth > 0:
        fetch_cmd = [
            git_bin, "fetch", "--quiet", "--unshallow",
            "--", "origin", "+refs/heads/*:refs/remotes/origin/*",
        ]
    else:
        # A full clone already holds every branch.
        raise CommitNotFoundError(f"Commit {sha} not found in repository history")

    logger.info("Fetching %s into %s", sha, repo_dir)
    fetch_result = run_tool(
        fetch_cmd,
        cwd=repo_dir,
        timeout=timeout,
        env=_git_env(),
    )
    if fetch_result.returncode != 0:
        if _looks_like_missing_commit(fetch_result.stderr):
            raise CommitNotFoundError(
                f"Commit {sha} not found in remote: {tail(fetch_result.stderr)}"
            )
        raise RepositoryUnreachableError(
            f"git fetch failed for SHA {sha}: {tail(fetch_result.stderr)}"
        )

    if not has_commit(repo_dir, sha, git_bin=git_bin):
        raise CommitNotFoundError(f"Commit {sha} not found in repository history")


def checkout_sha(
    repo_dir: Path,
    sha: str,
    depth: int = 1,
    git_bin: str = "git",
    timeout: int = 300,
) -> None:
    """Check out a specific commit SHA as a detached HEAD.

    Commits missing from the local clone (always the case for shallow
    clones of an older commit) are fetched first.

    Raises:
        CommitNotFoundError: sha is not a hex commit name, or the remote
            does not have the commit.
        RepositoryUnreachableError: The fetch failed for another reason.
    """
    _require_commit_sha(sha)
    logger.info("Checking out SHA %s in %s", sha, repo_dir)

    if not has_commit(repo_dir, sha, git_bin=git_bin):
        _fetch_commit(repo_dir, sha, depth, git_bin, timeout)

    checkout_result = run_tool(
        [git_bin, "checkout", "--quiet", "--detach", sha, "--"],
        cwd=repo_dir,
        timeout=60,
        env=_git_env(),
    )
    if checkout_result.returncode != 0:
        raise CommitNotFoundError(
            f"git checkout failed for SHA {sha}: {tail(checkout_result.stderr)}"
        )

    logger.info("Checked out %s successfully", sha)


def materialize_source(
    repository_url: str,
    commit_sha: str,
    dest: Path,
    depth: int = 1,
    git_bin: str = "git",
    timeout: int = 300,
) -> MaterializedTree:
    """Clone repository_url into dest and check out commit_sha exactly.

    HEAD is verified after checkout; an abbreviated commit_sha must be a
    prefix of the resolved HEAD.
    """
    _require_commit_sha(commit_sha)
    clone_repo(repository_url, dest, depth=depth, git_bin=git_bin, timeout=timeout)
    checkout_sha(dest, commit_sha, depth=depth, git_bin=git_bin, timeout=timeout)

    head = get_head_sha(dest, git_bin=git_bin)
    if not head.lower().startswith(commit_sha.lower()):
        raise CommitNotFoundError(
            f"HEAD is {head} after checking out {commit_sha}"
        )

    return MaterializedTree(
        root=dest,
        repository_url=repository_url,
        commit_sha=head,
    )
