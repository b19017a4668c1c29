from __future__ import annotations

import base64
import os
import re
import shutil
import subprocess  # noqa: S404
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dotenv import dotenv_values

from repodocs.exceptions import CloneError, CloneFailure, OperationCancelledError
from repodocs.logging import logger
from repodocs.settings import ENV_FILE

if TYPE_CHECKING:
    from collections.abc import Mapping

    from repodocs.cancellation import CancellationToken
    from repodocs.config import CloneConfig
    from repodocs.models import RepositorySource

TOKEN_VARIABLE = "GITHUB_TOKEN"

# Checked in order; the first match wins.
_FAILURE_PATTERNS: list[tuple[CloneFailure, re.Pattern[str]]] = [
    (
        CloneFailure.NOT_FOUND,
        re.compile(
            r"repository '.*' not found|repository not found|does not appear to be a git repository"
            r"|remote branch .* not found|could not find remote branch",
            re.IGNORECASE,
        ),
    ),
    (
        CloneFailure.AUTH_REQUIRED,
        re.compile(
            r"authentication failed|could not read (username|password)|terminal prompts disabled"
            r"|permission denied \(publickey|invalid username or password|returned error: 40[13]",
            re.IGNORECASE,
        ),
    ),
    (
        CloneFailure.NETWORK_ERROR,
        re.compile(
            r"could not resolve host|failed to connect|connection (timed out|refused|reset)"
            r"|network is unreachable|unable to access|early eof|rpc failed|operation timed out"
            r"|could not read from remote repository",
            re.IGNORECASE,
        ),
    ),
]


def classify_git_failure(stderr: str) -> CloneFailure:
    """Map git's stderr to a typed clone failure (`git_error` when nothing matches)."""
    for failure, pattern in _FAILURE_PATTERNS:
        if pattern.search(stderr):
            return failure
    return CloneFailure.GIT_ERROR


def read_token(environ: Mapping[str, str] | None = None) -> str | None:
    """Return the GitHub token from the environment, else from the `.env` file found at startup."""
    env = os.environ if environ is None else environ
    token = env.get(TOKEN_VARIABLE)
    if not token and ENV_FILE:
        token = dotenv_values(ENV_FILE).get(TOKEN_VARIABLE)
    return token or None


def git_environment(source: RepositorySource, token: str | None) -> dict[str, str]:
    """Build the environment of the git process.

    Prompts are always disabled. For https clones a token is handed to git
    as an extra HTTP header through `GIT_CONFIG_*` variables, so it never
    shows up on the command line or in the clone URL.
    """
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.pop(TOKEN_VARIABLE, None)
    if token and source.scheme == "https":
        basic = base64.b64encode(f"x-access-token:{token}".encode()).decode("ascii")
        env["GIT_CONFIG_COUNT"] = "1"
        env["GIT_CONFIG_KEY_0"] = f"http.https://{source.host}/.extraheader"
        env["GIT_CONFIG_VALUE_0"] = f"AUTHORIZATION: basic {basic}"
    return env


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


class GitCloner:
    """Clone a validated repository with the `git` executable.

    No retries are attempted; the first failure is reported as a `CloneError`.
    """

    def __init__(self, config: CloneConfig, *, git_binary: str = "git", poll_interval: float = 0.2) -> None:
        self.config = config
        self.git_binary = git_binary
        self.poll_interval = poll_interval

    def command(self, source: RepositorySource, destination: Path) -> list[str]:
        cmd = [self.git_binary, "clone", "--quiet", "--no-recurse-submodules"]
        if self.config.depth is not None:
            cmd += ["--depth", str(self.config.depth)]
        branch = self.config.branch or source.branch
        if branch:
            cmd += ["--branch", branch]
        cmd += ["--", source.clone_url, str(destination)]
        return cmd

    @staticmethod
    def _kill(proc: subprocess.Popen[str]) -> None:
        proc.kill()
        proc.communicate()

    def clone(
        self,
        source: RepositorySource,
        destination: Path,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Path:
        """Clone `source` into `destination`, which must not exist yet.

        Args:
            source (RepositorySource): the validated repository
            destination (Path): the checkout directory, inside a scoped workspace
            cancel_token (CancellationToken | None): polled while git runs

        Raises:
            CloneError: on timeout, authentication, network, not-found or other git failures
            OperationCancelledError: if the token is cancelled while cloning

        Returns:
            Path: the checkout directory
        """
        cmd = self.command(source, destination)
        env = git_environment(source, read_token())
        logger.info("clone_started", url=source.clone_url, depth=self.config.depth, timeout=self.config.timeout)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(  # noqa: S603
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except OSError as exc:
            raise CloneError(url=source.url, failure=CloneFailure.GIT_ERROR, detail=f"cannot run git: {exc}") from exc

        while True:
            try:
                _, stderr = proc.communicate(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.cancelled:
                    self._kill(proc)
                    logger.warning("clone_cancelled", url=source.url)
                    raise OperationCancelledError from None
                if time.monotonic() - start > self.config.timeout:
                    self._kill(proc)
                    logger.error("clone_timeout", url=source.url, timeout=self.config.timeout)
                    raise CloneError(
                        url=source.url,
                        failure=CloneFailure.TIMEOUT,
                        detail=f"no result after {self.config.timeout:g} seconds",
                    ) from None

        if proc.returncode != 0:
            failure = classify_git_failure(stderr or "")
            logger.error("clone_failed", url=source.url, failure=str(failure), returncode=proc.returncode)
            raise CloneError(url=source.url, failure=failure, detail=_last_line(stderr or ""))
        logger.info("clone_finished", url=source.url, seconds=round(time.monotonic() - start, 2))
        return destination


def _log_cleanup_error(function: Any, path: str, exc: BaseException) -> None:  # noqa: ANN401
    logger.warning("workspace_cleanup_failed", path=path, operation=getattr(function, "__name__", ""), error=str(exc))


class CloneWorkspace:
    """Temporary directory holding one clone, removed on every exit path.

    Usage:
        with CloneWorkspace() as workspace:
            cloner.clone(source, workspace / "repo")
    """

    def __init__(self, prefix: str = "repodocs-", parent: Path | None = None) -> None:
        self.prefix = prefix
        self.parent = parent
        self.path: Path | None = None

    def __enter__(self) -> Path:
        self.path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.parent))
        logger.debug("workspace_created", path=str(self.path))
        return self.path

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        if self.path is not None and self.path.exists():
            shutil.rmtree(self.path, onexc=_log_cleanup_error)
            logger.debug("workspace_removed", path=str(self.path))
        self.path = None
