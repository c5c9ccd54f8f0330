"""Carry out a reconciliation decision against the working copy."""

from __future__ import annotations

import logging
import shutil
from contextlib import AsyncExitStack
from pathlib import Path

from repofetch.auth import CredentialScopeManager
from repofetch.errors import DirtyWorkingCopyError, GitCommandError, RefNotResolvableError
from repofetch.git.commands import GitCommandManager
from repofetch.git.runner import ProcessRunner
from repofetch.github import get_fetch_url
from repofetch.inspector import (
    META_LFS,
    META_REF,
    META_SUBMODULES,
    clear_incomplete_marker,
    write_incomplete_marker,
)
from repofetch.models.settings import FetchSettings, SubmoduleMode
from repofetch.models.state import (
    FetchResult,
    NotARepository,
    ReconcileAction,
    ReconciliationDecision,
    ResolvedTarget,
    WorkingCopyState,
)
from repofetch.refs import RefResolver

logger = logging.getLogger(__name__)


def remove_contents(path: Path) -> None:
    """Delete everything inside path but keep the directory itself."""
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


class CheckoutExecutor:
    """Runs the git operations for one ReconciliationDecision.

    Every mutating action writes the incomplete marker first and clears it only
    once the primary tree is checked out and the credentials are gone. A failure
    or cancellation in between leaves the marker, which forces the next run into
    a full reclone.
    """

    def __init__(self, runner: ProcessRunner | None = None) -> None:
        self.runner = runner

    async def execute(
        self,
        decision: ReconciliationDecision,
        settings: FetchSettings,
        target: ResolvedTarget,
        state: WorkingCopyState | NotARepository | None = None,
    ) -> FetchResult:
        path = Path(settings.repository_path)
        action = decision.action
        logger.info(f"{action.value} at {path}: {'; '.join(decision.reasons) or 'no details'}")

        git = GitCommandManager(
            path,
            self.runner,
            secrets=[settings.auth_token],
            safe_directory=settings.set_safe_directory,
            progress=settings.show_progress,
        )
        observed = state if isinstance(state, WorkingCopyState) else None

        if action == ReconcileAction.REUSE:
            if observed is not None:
                await self._sync_credentials(git, settings, observed)
            return FetchResult(
                path=str(path),
                action=action,
                commit=target.commit,
                ref=target.qualified_ref,
                reasons=decision.reasons,
            )

        if action == ReconcileAction.FULL_RECLONE:
            await self._prepare_new(git, settings)
        elif action == ReconcileAction.CLEAN_RESET:
            if observed is not None and observed.dirty and not settings.clean:
                raise DirtyWorkingCopyError(str(path), observed.changes)
            write_incomplete_marker(path, action.value)
            await self._reset(git, settings, observed)
        else:
            write_incomplete_marker(path, action.value)

        warnings: list[str] = []
        scope = CredentialScopeManager(
            git,
            settings,
            include_submodules=settings.submodules != SubmoduleMode.NONE
            or bool(observed and observed.initialized_submodules),
        )
        needs_network = (
            decision.fetch
            or settings.lfs
            or settings.submodules != SubmoduleMode.NONE
            or settings.persist_credentials
        )
        async with AsyncExitStack() as stack:
            if needs_network:
                await stack.enter_async_context(scope)

            if decision.fetch:
                await self._fetch(git, settings, target, decision.depth)
            if action != ReconcileAction.INCREMENTAL_UPDATE:
                await self._configure_sparse(git, settings, observed)

            await git.checkout(target.commit, branch=target.checkout_branch)
            await git.config_set(META_REF, target.qualified_ref)
            logger.info(f"Checked out {target.qualified_ref or 'commit'} at {target.commit[:12]}")

            if settings.submodules != SubmoduleMode.NONE:
                warnings += await self._update_submodules(
                    git, settings, scope, reset=decision.is_destructive
                )
            else:
                await git.config_set(META_SUBMODULES, SubmoduleMode.NONE.value)

            if settings.lfs:
                warnings += await self._pull_lfs(git)
            else:
                await git.config_unset(META_LFS)

        reused_config = observed is not None and action != ReconcileAction.FULL_RECLONE
        if reused_config and not settings.persist_credentials:
            await self._sync_credentials(git, settings, observed)

        clear_incomplete_marker(path)
        return FetchResult(
            path=str(path),
            action=action,
            commit=target.commit,
            ref=target.qualified_ref,
            warnings=warnings,
            reasons=decision.reasons,
        )

    async def _prepare_new(self, git: GitCommandManager, settings: FetchSettings) -> None:
        path = git.working_dir
        if path.is_dir():
            logger.info(f"Removing contents of {path}")
            remove_contents(path)
        elif path.exists() or path.is_symlink():
            logger.info(f"Removing {path}, which is not a directory")
            path.unlink()
        path.mkdir(parents=True, exist_ok=True)

        await git.init()
        write_incomplete_marker(path, ReconcileAction.FULL_RECLONE.value)
        url = get_fetch_url(settings.server_url, settings.repository_owner, settings.repository_name)
        await git.remote_add("origin", url)
        await self._configure_filter(git, settings)

    async def _reset(
        self,
        git: GitCommandManager,
        settings: FetchSettings,
        observed: WorkingCopyState | None,
    ) -> None:
        await git.reset_hard()
        await git.clean()
        await self._configure_filter(git, settings)
        if settings.submodules == SubmoduleMode.NONE and observed and observed.initialized_submodules:
            logger.info("Deinitializing submodules that are no longer requested")
            await git.submodule_deinit_all()

    async def _sync_credentials(
        self,
        git: GitCommandManager,
        settings: FetchSettings,
        observed: WorkingCopyState,
    ) -> None:
        """Match auth headers left by an earlier run to persist_credentials."""
        scope = CredentialScopeManager(
            git, settings, include_submodules=bool(observed.initialized_submodules)
        )
        if not settings.persist_credentials:
            if not observed.auth_headers:
                return
            logger.info(f"Removing persisted credentials from {git.working_dir}")
            for key in observed.auth_headers:
                await git.config_unset(key)
            await scope.remove()
        elif settings.auth_token and scope.key not in observed.auth_headers:
            logger.info(f"Persisting credentials in {git.working_dir}")
            await scope.configure()
            if settings.submodules != SubmoduleMode.NONE:
                await scope.configure_submodules()

    @staticmethod
    async def _configure_filter(git: GitCommandManager, settings: FetchSettings) -> None:
        if settings.filter:
            await git.config_set("remote.origin.promisor", "true")
            await git.config_set("remote.origin.partialclonefilter", settings.filter)
        else:
            await git.config_unset("remote.origin.partialclonefilter")

    async def _fetch(
        self,
        git: GitCommandManager,
        settings: FetchSettings,
        target: ResolvedTarget,
        depth: int,
    ) -> None:
        ref_spec = target.ref_spec
        result = await git.fetch(
            ref_spec,
            depth=depth,
            fetch_tags=settings.fetch_tags,
            filter=settings.filter,
            unshallow=depth == 0 and await git.is_shallow(),
            allow_failure=bool(target.fallback_ref_spec),
        )
        if not result.ok:
            logger.warning(
                f"Fetching {target.commit[:12]} by id was refused, "
                f"fetching {target.qualified_ref} instead"
            )
            ref_spec = target.fallback_ref_spec
            await git.fetch(
                ref_spec,
                depth=depth,
                fetch_tags=settings.fetch_tags,
                filter=settings.filter,
                unshallow=depth == 0 and await git.is_shallow(),
            )

        while not await git.has_commit(target.commit):
            if depth == 0:
                url = get_fetch_url(settings.server_url, settings.repository_owner, settings.repository_name)
                raise RefNotResolvableError(
                    target.commit, url, "commit not found after fetching full history"
                )
            depth = RefResolver.widen(depth)
            logger.info(f"Commit {target.commit[:12]} not reachable, deepening to {depth or 'full history'}")
            await git.fetch(
                ref_spec,
                depth=depth,
                fetch_tags=settings.fetch_tags,
                filter=settings.filter,
                unshallow=depth == 0 and await git.is_shallow(),
            )

    @staticmethod
    async def _configure_sparse(
        git: GitCommandManager,
        settings: FetchSettings,
        observed: WorkingCopyState | None,
    ) -> None:
        if settings.sparse_checkout:
            await git.sparse_checkout_set(
                settings.sparse_checkout, cone=settings.sparse_checkout_cone_mode
            )
        elif observed is not None and observed.sparse_enabled:
            await git.sparse_checkout_disable()

    async def _update_submodules(
        self,
        git: GitCommandManager,
        settings: FetchSettings,
        scope: CredentialScopeManager,
        reset: bool,
    ) -> list[str]:
        recursive = settings.nested_submodules
        try:
            await git.submodule_sync(recursive=recursive)
            await git.submodule_update(
                recursive=recursive,
                depth=settings.fetch_depth,
                env=scope.environment(),
            )
            if reset:
                await git.submodule_foreach(
                    "git reset --hard HEAD && git clean -ffdx", recursive=recursive
                )
            if settings.persist_credentials:
                await scope.configure_submodules()
        except GitCommandError as e:
            logger.warning(f"Submodule update failed: {e}")
            await git.config_unset(META_SUBMODULES)
            return [f"submodules: {e}"]
        await git.config_set(META_SUBMODULES, settings.submodules.value)
        return []

    async def _pull_lfs(self, git: GitCommandManager) -> list[str]:
        try:
            await git.lfs_install()
            await git.lfs_pull()
        except GitCommandError as e:
            logger.warning(f"Large file download failed: {e}")
            await git.config_unset(META_LFS)
            return [f"lfs: {e}"]
        await git.config_set(META_LFS, "true")
        return []
