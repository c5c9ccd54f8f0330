"""Read-only inspection of an existing working copy."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from repofetch.errors import GitCommandError
from repofetch.git.commands import GitCommandManager
from repofetch.git.runner import ProcessRunner
from repofetch.models.settings import SubmoduleMode
from repofetch.models.state import NotARepository, WorkingCopyState

logger = logging.getLogger(__name__)

# Lives inside .git so it is never part of the working tree
INCOMPLETE_MARKER = "repofetch_incomplete"

# Local config keys recording what the last successful fetch applied
META_REF = "repofetch.ref"
META_SUBMODULES = "repofetch.submodules"
META_LFS = "repofetch.lfs"


def marker_path(path: Path) -> Path:
    return Path(path) / ".git" / INCOMPLETE_MARKER


def write_incomplete_marker(path: Path, action: str) -> None:
    """Flag the working copy as unreliable until the current action finishes."""
    info = {
        "started_at": datetime.now().isoformat(),
        "action": action,
    }
    marker_path(path).write_text(json.dumps(info, indent=2))


def clear_incomplete_marker(path: Path) -> None:
    marker_path(path).unlink(missing_ok=True)


def read_incomplete_marker(path: Path) -> dict | None:
    """Marker metadata, an empty dict for an unreadable marker, None if absent."""
    marker = marker_path(path)
    if not marker.exists():
        return None
    try:
        return json.loads(marker.read_text())
    except (json.JSONDecodeError, OSError):
        return {}


class RepositoryStateInspector:
    """Reports what is currently on disk at a target path. Never mutates."""

    def __init__(self, runner: ProcessRunner | None = None, safe_directory: bool = False) -> None:
        self.runner = runner
        self.safe_directory = safe_directory

    async def inspect(self, path: Path) -> WorkingCopyState | NotARepository:
        path = Path(path)
        reason = self._precheck(path)
        if reason:
            logger.info(f"No reusable working copy at {path}: {reason}")
            return NotARepository(path=str(path), reason=reason)

        git = GitCommandManager(path, self.runner, safe_directory=self.safe_directory)
        try:
            return await self._read_state(path, git)
        except _NotARepo as e:
            logger.info(f"No reusable working copy at {path}: {e}")
            return NotARepository(path=str(path), reason=str(e))
        except GitCommandError as e:
            logger.warning(f"Working copy at {path} could not be inspected: {e}")
            return NotARepository(path=str(path), reason=f"inspection failed: {e}")

    @staticmethod
    def _precheck(path: Path) -> str:
        if not path.exists():
            return "path does not exist"
        if not path.is_dir():
            return "path is not a directory"
        if not any(path.iterdir()):
            return "directory is empty"
        if not (path / ".git").is_dir():
            return "no .git directory"
        marker = read_incomplete_marker(path)
        if marker is not None:
            action = marker.get("action", "unknown action")
            started = marker.get("started_at", "unknown time")
            return f"previous fetch did not complete ({action} started {started})"
        return ""

    async def _read_state(self, path: Path, git: GitCommandManager) -> WorkingCopyState:
        toplevel = await git.toplevel()
        if toplevel is None or Path(toplevel).resolve() != path.resolve():
            raise _NotARepo("not the top level of a working copy")

        remote_url = await git.config_get("remote.origin.url")
        if not remote_url:
            raise _NotARepo("no origin remote configured")

        head = await git.rev_parse("HEAD")
        if not head:
            raise _NotARepo("HEAD does not point at a commit")

        meta = await git.config_get_regexp(r"^repofetch\.")
        changes = await git.status_porcelain()
        sparse_enabled = (await git.config_get("core.sparseCheckout", worktree=True)) == "true"
        sparse_cone = (await git.config_get("core.sparseCheckoutCone", worktree=True)) == "true"
        submodule_urls = await git.config_get_regexp(r"^submodule\..*\.url$")
        auth_headers = await git.config_get_regexp(r"^http\..*\.extraheader$")

        try:
            submodules = SubmoduleMode(meta.get(META_SUBMODULES, SubmoduleMode.NONE.value))
        except ValueError:
            submodules = SubmoduleMode.NONE

        return WorkingCopyState(
            path=str(path),
            remote_url=remote_url,
            head=head,
            branch=await git.current_branch(),
            fetched_ref=meta.get(META_REF, ""),
            dirty=bool(changes),
            changes=changes,
            shallow=await git.is_shallow(),
            sparse_enabled=sparse_enabled,
            sparse_cone=sparse_cone,
            sparse_paths=await git.sparse_checkout_list() if sparse_enabled else [],
            submodules=submodules,
            initialized_submodules=sorted(
                key[len("submodule."):-len(".url")] for key in submodule_urls
            ),
            lfs=meta.get(META_LFS) == "true",
            filter=await git.config_get("remote.origin.partialclonefilter") or "",
            auth_headers=sorted(auth_headers),
        )


class _NotARepo(Exception):
    pass
