"""Resolve the requested ref to a concrete commit and a fetch plan."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from repofetch.auth import credential_environment
from repofetch.errors import GitCommandError, RefNotResolvableError
from repofetch.git.commands import GitCommandManager
from repofetch.git.runner import ProcessRunner
from repofetch.github import GitHubClient, get_fetch_url, normalize_remote_url
from repofetch.models.settings import FetchSettings
from repofetch.models.state import NotARepository, ResolvedTarget, WorkingCopyState

logger = logging.getLogger(__name__)

MAX_SHALLOW_DEPTH = 1024

HEADS = "refs/heads/"
TAGS = "refs/tags/"
PULL = "refs/pull/"


def tracking_ref_for(qualified_ref: str) -> str:
    """Local ref a fetched commit is stored under."""
    if qualified_ref.startswith(HEADS):
        return f"refs/remotes/origin/{qualified_ref[len(HEADS):]}"
    if qualified_ref.startswith(PULL):
        return f"refs/remotes/pull/{qualified_ref[len(PULL):]}"
    return qualified_ref


def branch_name_for(qualified_ref: str) -> str:
    """Local branch to check out, empty for refs that are checked out detached."""
    if qualified_ref.startswith(HEADS):
        return qualified_ref[len(HEADS):]
    return ""


class RefResolver:
    """Turns settings plus the observed working copy into a ResolvedTarget."""

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        github: GitHubClient | None = None,
    ) -> None:
        self.runner = runner
        self.github = github

    @staticmethod
    def widen(depth: int) -> int:
        """Next depth to try when the target is beyond the shallow frontier.

        Returns 0 (full history) once doubling would pass MAX_SHALLOW_DEPTH.
        """
        if depth <= 0:
            return 0
        widened = depth * 2
        return 0 if widened > MAX_SHALLOW_DEPTH else widened

    async def resolve(
        self,
        settings: FetchSettings,
        state: WorkingCopyState | NotARepository,
    ) -> ResolvedTarget:
        url = get_fetch_url(settings.server_url, settings.repository_owner, settings.repository_name)
        env = credential_environment(settings)
        git = GitCommandManager(
            settings.repository_path,
            self.runner,
            secrets=[settings.auth_token],
            safe_directory=settings.set_safe_directory,
        )

        qualified_ref = await self._qualify(settings, git, url, env)
        remote_tip = ""
        if qualified_ref:
            remote_tip = await self._lookup(git, url, qualified_ref, env, required=not settings.commit)

        commit = settings.commit.lower() if settings.commit else remote_tip
        tracking_ref = tracking_ref_for(qualified_ref) if qualified_ref else ""
        ref_spec = [f"+{commit}:{tracking_ref}"] if tracking_ref else [commit]
        fallback = [f"+{qualified_ref}:{tracking_ref}"] if tracking_ref else []

        depth = settings.fetch_depth
        present = False
        widened = False
        if isinstance(state, WorkingCopyState) and normalize_remote_url(state.remote_url) == normalize_remote_url(url):
            present = await git.has_commit(commit)
            if not state.shallow:
                # Never narrow a full history
                depth = 0
            elif depth > 0:
                depth = max(depth, await git.history_depth("HEAD"))
                if not present and remote_tip and commit != remote_tip:
                    depth = self.widen(depth)
                    widened = True

        target = ResolvedTarget(
            commit=commit,
            qualified_ref=qualified_ref,
            checkout_branch=branch_name_for(qualified_ref),
            tracking_ref=tracking_ref,
            ref_spec=ref_spec,
            fallback_ref_spec=fallback,
            depth=depth,
            remote_tip=remote_tip,
            present_locally=present,
            widened=widened,
        )
        logger.info(
            f"Resolved {qualified_ref or 'commit'} to {commit[:12]}"
            f" (depth {depth or 'full'}{', widened' if widened else ''})"
        )
        return target

    async def _qualify(
        self,
        settings: FetchSettings,
        git: GitCommandManager,
        url: str,
        env: dict[str, str],
    ) -> str:
        ref = settings.ref
        if not ref:
            if settings.commit:
                return ""
            return await self._default_branch(settings, git, url, env)
        if ref.startswith("refs/"):
            return ref
        if settings.commit:
            # An unqualified ref next to an explicit commit names a branch
            return f"{HEADS}{ref}"

        advertised = await self._ls_remote(git, url, [f"{HEADS}{ref}", f"{TAGS}{ref}"], env, ref)
        if f"{HEADS}{ref}" in advertised:
            return f"{HEADS}{ref}"
        if f"{TAGS}{ref}" in advertised:
            return f"{TAGS}{ref}"
        raise RefNotResolvableError(ref, url, "no branch or tag with that name")

    async def _lookup(
        self,
        git: GitCommandManager,
        url: str,
        qualified_ref: str,
        env: dict[str, str],
        required: bool,
    ) -> str:
        peeled = f"{qualified_ref}^{{}}"
        try:
            advertised = await self._ls_remote(git, url, [qualified_ref, peeled], env, qualified_ref)
        except RefNotResolvableError:
            if required:
                raise
            return ""
        # Annotated tags resolve to the commit they point at
        commit = advertised.get(peeled) or advertised.get(qualified_ref, "")
        if not commit and required:
            raise RefNotResolvableError(qualified_ref, url, "not advertised by the remote")
        return commit.lower()

    async def _ls_remote(
        self,
        git: GitCommandManager,
        url: str,
        patterns: list[str],
        env: dict[str, str],
        ref: str,
    ) -> dict[str, str]:
        try:
            return await git.ls_remote(url, patterns, env=env)
        except GitCommandError as e:
            raise RefNotResolvableError(ref, url, (e.stderr or "").strip()) from e

    async def _default_branch(
        self,
        settings: FetchSettings,
        git: GitCommandManager,
        url: str,
        env: dict[str, str],
    ) -> str:
        branch = await git.default_branch(url, env=env)
        if branch:
            logger.debug(f"Default branch from remote HEAD: {branch}")
            return branch

        if urlparse(url).scheme in ("http", "https"):
            client = self.github or GitHubClient(settings.server_url, settings.auth_token)
            try:
                name = await client.get_default_branch(
                    settings.repository_owner, settings.repository_name
                )
            finally:
                if self.github is None:
                    await client.close()
            if name:
                logger.debug(f"Default branch from REST API: {name}")
                return name if name.startswith("refs/") else f"{HEADS}{name}"

        raise RefNotResolvableError("", url, "unable to determine the default branch")
