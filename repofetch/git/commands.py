"""Narrow interface over the git command line.

Only the operations the fetch core needs are exposed here: init, remote setup,
ls-remote, fetch, checkout, reset/clean, sparse-checkout, submodules, LFS and
local config access. Everything runs through a ProcessRunner so tests can script
git's answers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Sequence

from repofetch.errors import GitCommandError, redact
from repofetch.git.runner import AsyncProcessRunner, ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)

GIT = "git"


class GitCommandManager:
    """Runs git commands against one working directory."""

    def __init__(
        self,
        working_dir: Path,
        runner: ProcessRunner | None = None,
        *,
        secrets: Sequence[str] = (),
        safe_directory: bool = False,
        progress: bool = False,
    ) -> None:
        self.working_dir = Path(working_dir)
        self.runner = runner or AsyncProcessRunner()
        self.secrets = [s for s in secrets if s]
        self.safe_directory = safe_directory
        self.progress = progress

    @property
    def git_dir(self) -> Path:
        return self.working_dir / ".git"

    async def run(
        self,
        *args: str,
        allow_failure: bool = False,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        """Run ``git <args>`` and raise GitCommandError on failure unless allowed."""
        cmd = [GIT]
        if self.safe_directory:
            cmd += ["-c", f"safe.directory={self.working_dir}"]
        cmd += list(args)
        logger.debug(f"Running: {redact(' '.join(cmd), self.secrets)}")
        result = await self.runner.run(cmd, cwd=cwd or self.working_dir, env=env)
        if not result.ok and not allow_failure:
            raise GitCommandError(
                cmd, result.returncode, result.stdout, result.stderr, self.secrets
            )
        return result

    # Repository setup

    async def init(self) -> None:
        await self.run("init", str(self.working_dir), cwd=self.working_dir)

    async def remote_add(self, name: str, url: str) -> None:
        await self.run("remote", "add", name, url)

    async def toplevel(self) -> str | None:
        """Top level of the working tree containing working_dir, if any."""
        result = await self.run("rev-parse", "--show-toplevel", allow_failure=True)
        return result.stdout.strip() if result.ok else None

    # Local configuration

    async def config_get(self, key: str, *, worktree: bool = False) -> str | None:
        """Read key from the local config.

        ``worktree`` reads $GIT_DIR/config.worktree when extensions.worktreeConfig
        is on, which is where sparse-checkout keeps its settings.
        """
        scope = "--worktree" if worktree else "--local"
        result = await self.run("config", scope, "--get", key, allow_failure=True)
        return result.stdout.strip() if result.ok else None

    async def config_get_regexp(self, pattern: str) -> dict[str, str]:
        """Local config entries whose key matches pattern (last value wins)."""
        result = await self.run(
            "config", "--local", "--get-regexp", pattern, allow_failure=True
        )
        entries: dict[str, str] = {}
        if not result.ok:
            return entries
        for line in result.stdout.splitlines():
            key, _, value = line.partition(" ")
            if key:
                entries[key] = value
        return entries

    async def config_set(self, key: str, value: str, *, add: bool = False) -> None:
        args = ["config", "--local"]
        if add:
            args.append("--add")
        await self.run(*args, key, value)

    async def config_unset(self, key: str, *, file: Path | None = None) -> bool:
        """Remove every value of key. Returns False if it was not set."""
        scope = ["--file", str(file)] if file else ["--local"]
        result = await self.run("config", *scope, "--unset-all", key, allow_failure=True)
        # Exit code 5 means the key did not exist
        if not result.ok and result.returncode != 5:
            raise GitCommandError(
                result.args, result.returncode, result.stdout, result.stderr, self.secrets
            )
        return result.ok

    # Remote queries

    async def ls_remote(
        self,
        url: str,
        patterns: Sequence[str],
        env: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Map of advertised ref name to commit for the given patterns."""
        result = await self.run(
            "ls-remote", "--quiet", url, *patterns,
            cwd=self._query_cwd(), env=env,
        )
        refs: dict[str, str] = {}
        for line in result.stdout.splitlines():
            sha, _, name = line.partition("\t")
            if sha and name:
                refs[name.strip()] = sha.strip()
        return refs

    async def default_branch(
        self, url: str, env: Mapping[str, str] | None = None
    ) -> str | None:
        """Branch the remote HEAD points at, e.g. ``refs/heads/main``."""
        result = await self.run(
            "ls-remote", "--quiet", "--symref", url, "HEAD",
            cwd=self._query_cwd(), env=env, allow_failure=True,
        )
        if not result.ok:
            return None
        for line in result.stdout.splitlines():
            if line.startswith("ref:") and line.rstrip().endswith("HEAD"):
                ref = line[len("ref:"):].strip().split("\t")[0].strip()
                return ref or None
        return None

    # Object queries

    async def rev_parse(self, rev: str) -> str | None:
        result = await self.run("rev-parse", "--verify", "-q", rev, allow_failure=True)
        return result.stdout.strip() if result.ok and result.stdout.strip() else None

    async def has_commit(self, sha: str) -> bool:
        result = await self.run("cat-file", "-e", f"{sha}^{{commit}}", allow_failure=True)
        return result.ok

    async def current_branch(self) -> str:
        result = await self.run("symbolic-ref", "--short", "-q", "HEAD", allow_failure=True)
        return result.stdout.strip() if result.ok else ""

    async def is_shallow(self) -> bool:
        result = await self.run("rev-parse", "--is-shallow-repository", allow_failure=True)
        if result.ok and result.stdout.strip() in ("true", "false"):
            return result.stdout.strip() == "true"
        return (self.git_dir / "shallow").exists()

    async def history_depth(self, rev: str = "HEAD") -> int:
        result = await self.run("rev-list", "--count", rev, allow_failure=True)
        try:
            return int(result.stdout.strip()) if result.ok else 0
        except ValueError:
            return 0

    async def status_porcelain(self) -> list[str]:
        """Modified or staged tracked paths; untracked files are ignored."""
        result = await self.run("status", "--porcelain", "--untracked-files=no")
        return [line[3:] for line in result.stdout.splitlines() if line.strip()]

    # Fetch and checkout

    async def fetch(
        self,
        ref_spec: Sequence[str],
        *,
        depth: int = 0,
        fetch_tags: bool = False,
        filter: str = "",
        unshallow: bool = False,
        allow_failure: bool = False,
    ) -> ProcessResult:
        args = ["-c", "protocol.version=2", "fetch", "--prune", "--no-recurse-submodules"]
        if not fetch_tags:
            args.append("--no-tags")
        if self.progress:
            args.append("--progress")
        if filter:
            args.append(f"--filter={filter}")
        if depth > 0:
            args.append(f"--depth={depth}")
        elif unshallow:
            args.append("--unshallow")
        args.append("origin")
        args.extend(ref_spec)
        return await self.run(*args, allow_failure=allow_failure)

    async def checkout(self, target: str, *, branch: str = "") -> None:
        args = ["checkout", "--force"]
        if self.progress:
            args.append("--progress")
        if branch:
            args += ["-B", branch]
        args.append(target)
        await self.run(*args)

    async def reset_hard(self, rev: str = "HEAD") -> None:
        await self.run("reset", "--hard", rev)

    async def clean(self) -> None:
        await self.run("clean", "-ffdx")

    # Sparse checkout

    async def sparse_checkout_set(self, paths: Sequence[str], *, cone: bool) -> None:
        mode = "--cone" if cone else "--no-cone"
        await self.run("sparse-checkout", "set", mode, *paths)

    async def sparse_checkout_disable(self) -> None:
        await self.run("sparse-checkout", "disable")

    async def sparse_checkout_list(self) -> list[str]:
        result = await self.run("sparse-checkout", "list", allow_failure=True)
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    # Submodules

    async def submodule_sync(self, *, recursive: bool) -> None:
        args = ["submodule", "sync"]
        if recursive:
            args.append("--recursive")
        await self.run(*args)

    async def submodule_update(
        self,
        *,
        recursive: bool,
        depth: int = 0,
        env: Mapping[str, str] | None = None,
    ) -> None:
        args = ["-c", "protocol.version=2", "submodule", "update", "--init", "--force"]
        if depth > 0:
            args.append(f"--depth={depth}")
        if recursive:
            args.append("--recursive")
        await self.run(*args, env=env)

    async def submodule_foreach(self, command: str, *, recursive: bool) -> ProcessResult:
        args = ["submodule", "foreach"]
        if recursive:
            args.append("--recursive")
        args.append(command)
        return await self.run(*args)

    async def submodule_deinit_all(self) -> None:
        await self.run("submodule", "deinit", "--all", "--force")

    # Large files

    async def lfs_install(self) -> None:
        await self.run("lfs", "install", "--local")

    async def lfs_pull(self) -> None:
        await self.run("lfs", "pull", "origin")

    def _query_cwd(self) -> Path | None:
        """ls-remote needs an existing directory but no repository."""
        path = self.working_dir
        while not path.is_dir() and path != path.parent:
            path = path.parent
        return path
