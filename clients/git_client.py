#!/usr/bin/env python3
"""Thin wrapper over the ``git`` CLI for the read-mostly operations the release needs.

Only tag creation, push and deletion have side effects; everything else
queries the local clone.
"""

import datetime as _dt
import logging
import subprocess
from typing import Dict, List, Optional

from configs.config import Config
from utils.release_errors import DuplicateVersionError, GitCommandError, TransientNetworkError

logger = logging.getLogger(__name__)

# Field/record separators unlikely to appear in commit subjects
_FS = "\x1f"
_RS = "\x1e"


class GitClient:
    """Runs git commands inside a working copy."""

    def __init__(self, repo_path: str = ".", binary: Optional[str] = None, timeout_s: Optional[int] = None):
        git_config = Config.get_git_config()
        self.repo_path = repo_path
        self.binary = binary or git_config["binary"]
        self.timeout_s = timeout_s or git_config["timeout_s"]

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            proc = subprocess.run(
                cmd,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as e:
            raise GitCommandError(f"git executable not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(f"git {args[0]} timed out after {self.timeout_s}s", code="TIMEOUT") from e
        if check and proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            raise GitCommandError(f"git {' '.join(args)} failed ({proc.returncode}): {stderr}")
        return proc

    def _out(self, *args: str) -> str:
        return self._run(*args).stdout.strip()

    def _run_remote(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a command that talks to a remote; a timeout there is a network failure."""
        try:
            return self._run(*args, check=check)
        except GitCommandError as e:
            if e.code == "TIMEOUT":
                raise TransientNetworkError(str(e), code="TIMEOUT") from e
            raise

    def fetch_tags(self, remote: str = "origin") -> None:
        logger.info(f"Fetching tags from {remote}")
        self._run_remote("fetch", "--tags", remote)

    def list_tags(self) -> List[str]:
        out = self._out("tag", "--list")
        return [line.strip() for line in out.splitlines() if line.strip()]

    def current_head_commit(self) -> str:
        return self._out("rev-parse", "HEAD")

    def current_branch(self) -> str:
        """Branch name, or an empty string on a detached HEAD."""
        return self._out("branch", "--show-current")

    def head_commit_subject(self) -> str:
        return self._out("log", "-1", "--pretty=%s")

    def initial_commit(self) -> str:
        """Root commit reachable from HEAD (the oldest one if there are several)."""
        roots = self._out("rev-list", "--max-parents=0", "HEAD").splitlines()
        if not roots:
            raise GitCommandError("Repository has no commits")
        return roots[-1].strip()

    def resolve(self, ref: str) -> str:
        return self._out("rev-parse", f"{ref}^{{commit}}")

    def commit_timestamp(self, ref: str) -> _dt.datetime:
        raw = self._out("show", "-s", "--format=%cI", f"{ref}^{{commit}}")
        return _dt.datetime.fromisoformat(raw)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        proc = self._run("merge-base", "--is-ancestor", ancestor, descendant, check=False)
        if proc.returncode == 0:
            return True
        if proc.returncode == 1:
            return False
        raise GitCommandError(
            f"Cannot check ancestry of {ancestor} and {descendant}: {(proc.stderr or '').strip()}"
        )

    def commits_in_range(self, since: str, until: str) -> List[Dict[str, str]]:
        """Commits in ``(since, until]``, newest first.

        Returns:
            Dicts with ``sha``, ``author`` and ``subject`` keys.
        """
        fmt = _FS.join(["%H", "%an", "%s"]) + _RS
        out = self._run("log", f"--format={fmt}", f"{since}..{until}").stdout
        commits = []
        for block in out.split(_RS):
            block = block.strip("\n")
            if not block:
                continue
            sha, author, subject = (block.split(_FS) + ["", ""])[:3]
            commits.append({"sha": sha.strip(), "author": author, "subject": subject})
        return commits

    def create_tag(self, name: str, commit: str, message: Optional[str] = None) -> None:
        args = ["tag"]
        if message:
            args += ["-a", name, "-m", message]
        else:
            args.append(name)
        args.append(commit)
        proc = self._run(*args, check=False)
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            if "already exists" in stderr:
                raise DuplicateVersionError(f"Tag {name} already exists")
            raise GitCommandError(f"git tag {name} failed: {stderr}")
        logger.info(f"Created tag {name} at {commit[:7]}")

    def push_tag(self, name: str, remote: str = "origin") -> None:
        proc = self._run_remote("push", remote, f"refs/tags/{name}", check=False)
        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            if "already exists" in stderr:
                raise DuplicateVersionError(f"Tag {name} already exists on {remote}")
            raise GitCommandError(f"git push {remote} {name} failed: {stderr}")
        logger.info(f"Pushed tag {name} to {remote}")

    def delete_tag(self, name: str, remote: Optional[str] = None) -> None:
        if remote:
            self._run_remote("push", "--delete", remote, f"refs/tags/{name}")
        self._run("tag", "-d", name)
