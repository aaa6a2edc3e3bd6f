# -----------------------------------------------------------------------------
# GIT INFRASTRUCTURE - SOURCE CHECKOUT
# -----------------------------------------------------------------------------
# Responsibility: Check out a mission's branch into a fresh staging directory
# on the host, ready to be copied into a rocket.
# Uses subprocess for lean, direct git command execution.
#
# Security:
# - GITHUB_TOKEN (optional) is injected into HTTPS GitHub URLs for private repos
# - Tokens are NEVER logged in plain text
# -----------------------------------------------------------------------------

import os
import shutil
import subprocess
import tempfile
from urllib.parse import urlparse, urlunparse

from rich.console import Console

console = Console()

CLONE_TIMEOUT_SECONDS = 120
STAGING_PREFIX = "launchpad-"


class GitError(Exception):
    """Raised when a Git operation fails."""

    pass


class GitClient:
    """
    Shallow, single-branch checkouts via the git CLI.

    Args:
        token: GitHub token for private repositories. Defaults to GITHUB_TOKEN.
        staging_root: Parent directory for staging checkouts (system temp dir
            when omitted).
    """

    def __init__(self, token: str | None = None, staging_root: str | None = None) -> None:
        self._token = token if token is not None else os.getenv("GITHUB_TOKEN")
        self._staging_root = staging_root

    def _authenticated_url(self, repo_url: str) -> str:
        parsed = urlparse(repo_url)
        if not self._token or parsed.scheme != "https" or parsed.hostname != "github.com":
            return repo_url
        netloc = f"x-access-token:{self._token}@{parsed.hostname}"
        return urlunparse(parsed._replace(netloc=netloc))

    def _sanitize_output(self, text: str) -> str:
        """Remove any sensitive data from output before logging."""
        if self._token and self._token in text:
            text = text.replace(self._token, "[REDACTED]")
        return text

    def clone(self, repo_url: str, branch: str) -> str:
        """
        Clone `branch` of `repo_url` (depth 1) and return the local path.

        Raises:
            GitError: If the clone fails or times out.
        """
        target = tempfile.mkdtemp(prefix=STAGING_PREFIX, dir=self._staging_root)
        cmd = [
            "git", "clone",
            "--depth", "1",
            "--single-branch",
            "--branch", branch,
            self._authenticated_url(repo_url),
            target,
        ]

        console.print(f"[cyan][GIT] Cloning {repo_url} ({branch})...[/cyan]")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=CLONE_TIMEOUT_SECONDS,
                env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
            )
        except subprocess.TimeoutExpired:
            shutil.rmtree(target, ignore_errors=True)
            raise GitError(f"Git clone timed out ({CLONE_TIMEOUT_SECONDS}s limit)")
        except (OSError, subprocess.SubprocessError) as e:
            shutil.rmtree(target, ignore_errors=True)
            raise GitError(f"Git subprocess error: {e}")

        if result.returncode != 0:
            shutil.rmtree(target, ignore_errors=True)
            error_msg = self._sanitize_output(result.stderr or result.stdout or "Unknown error")
            raise GitError(f"Git clone failed: {error_msg.strip()}")

        # The payload is the working tree only
        shutil.rmtree(os.path.join(target, ".git"), ignore_errors=True)
        console.print(f"[green][GIT] Checked out {branch} -> {target}[/green]")
        return target
