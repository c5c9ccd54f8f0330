"""SourceFetcher - unified entry point for fetching a repository."""

from __future__ import annotations

import logging
from typing import NamedTuple

from repofetch.executor import CheckoutExecutor
from repofetch.git.runner import AsyncProcessRunner, ProcessRunner
from repofetch.github import GitHubClient
from repofetch.inspector import RepositoryStateInspector
from repofetch.models.settings import FetchSettings
from repofetch.models.state import (
    FetchResult,
    NotARepository,
    ReconciliationDecision,
    ResolvedTarget,
    WorkingCopyState,
)
from repofetch.reconciler import reconcile
from repofetch.refs import RefResolver

logger = logging.getLogger(__name__)


class FetchPlan(NamedTuple):
    """Observed state, resolved target and the decision derived from them."""

    state: WorkingCopyState | NotARepository
    target: ResolvedTarget
    decision: ReconciliationDecision


class SourceFetcher:
    """Wires inspector, resolver, reconciler and executor together.

    Collaborators share one process runner so tests can script every git call.
    """

    def __init__(
        self,
        runner: ProcessRunner | None = None,
        github: GitHubClient | None = None,
    ) -> None:
        self.runner = runner or AsyncProcessRunner()
        self.github = github
        self._resolver: RefResolver | None = None
        self._executor: CheckoutExecutor | None = None

    @property
    def resolver(self) -> RefResolver:
        if self._resolver is None:
            self._resolver = RefResolver(self.runner, self.github)
        return self._resolver

    @property
    def executor(self) -> CheckoutExecutor:
        if self._executor is None:
            self._executor = CheckoutExecutor(self.runner)
        return self._executor

    def get_inspector(self, settings: FetchSettings) -> RepositoryStateInspector:
        return RepositoryStateInspector(self.runner, safe_directory=settings.set_safe_directory)

    async def inspect(self, settings: FetchSettings) -> WorkingCopyState | NotARepository:
        return await self.get_inspector(settings).inspect(settings.repository_path)

    async def plan(self, settings: FetchSettings) -> FetchPlan:
        """Inspect, resolve and reconcile without changing anything on disk."""
        state = await self.inspect(settings)
        target = await self.resolver.resolve(settings, state)
        decision = reconcile(settings, state, target)
        logger.info(f"Decision for {settings.repository}: {decision.action.value}")
        return FetchPlan(state, target, decision)

    async def get_source(self, settings: FetchSettings) -> FetchResult:
        """Bring settings.repository_path to the requested commit."""
        state, target, decision = await self.plan(settings)
        result = await self.executor.execute(decision, settings, target, state)
        for warning in result.warnings:
            logger.warning(f"{settings.repository}: {warning}")
        return result


async def get_source(settings: FetchSettings, runner: ProcessRunner | None = None) -> FetchResult:
    """Fetch settings.repository into settings.repository_path."""
    return await SourceFetcher(runner).get_source(settings)
