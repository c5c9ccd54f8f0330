"""Decide how to bring a working copy to the desired state.

``reconcile`` is a pure function: no I/O, same answer for the same inputs.
Any ambiguity resolves toward the stronger reset, never toward reuse.

| remote     | HEAD vs target          | dirty | config matches | action                         |
|------------|-------------------------|-------|----------------|--------------------------------|
| differs    | -                       | -     | -              | full_reclone                   |
| matches    | equal                   | no    | yes            | reuse                          |
| matches    | equal                   | no    | no             | clean_reset (reconfigure only) |
| matches    | differs, fetchable      | yes   | -              | clean_reset then update        |
| matches    | differs, fetchable      | no    | yes            | incremental_update             |
| matches    | beyond shallow frontier | -     | -              | incremental_update, widened    |

A change of lineage (the qualified ref recorded by the last fetch) counts like a
configuration mismatch, so switching refs always discards untracked files.
"""

from __future__ import annotations

from repofetch.github import get_fetch_url, normalize_remote_url
from repofetch.models.settings import FetchSettings, SubmoduleMode
from repofetch.models.state import (
    NotARepository,
    ReconcileAction,
    ReconciliationDecision,
    ResolvedTarget,
    WorkingCopyState,
)


def _normalize_sparse(paths: list[str], cone: bool) -> list[str]:
    if cone:
        # Cone mode works on directories; order and slashes do not matter
        return sorted({p.strip().strip("/") for p in paths if p.strip().strip("/")})
    return [p.strip() for p in paths if p.strip()]


def config_mismatches(settings: FetchSettings, state: WorkingCopyState) -> list[str]:
    """Reasons the working copy configuration differs from the settings."""
    reasons: list[str] = []

    want_sparse = bool(settings.sparse_checkout)
    if want_sparse != state.sparse_enabled:
        reasons.append("sparse checkout " + ("enabled" if want_sparse else "disabled"))
    elif want_sparse:
        cone = settings.sparse_checkout_cone_mode
        if cone != state.sparse_cone:
            reasons.append("sparse checkout cone mode changed")
        elif _normalize_sparse(settings.sparse_checkout, cone) != _normalize_sparse(state.sparse_paths, cone):
            reasons.append("sparse checkout paths changed")

    if settings.submodules != state.submodules:
        reasons.append(
            f"submodule mode changed from {state.submodules.value} to {settings.submodules.value}"
        )
    elif settings.submodules == SubmoduleMode.NONE and state.initialized_submodules:
        reasons.append("submodules initialized but not requested")

    if settings.filter != state.filter:
        reasons.append(f"partial clone filter changed from '{state.filter}' to '{settings.filter}'")

    if settings.lfs != state.lfs:
        reasons.append("large file support " + ("enabled" if settings.lfs else "disabled"))

    return reasons


def reconcile(
    settings: FetchSettings,
    state: WorkingCopyState | NotARepository,
    target: ResolvedTarget,
) -> ReconciliationDecision:
    """Choose reuse, incremental_update, clean_reset or full_reclone."""
    desired_url = get_fetch_url(settings.server_url, settings.repository_owner, settings.repository_name)

    if isinstance(state, NotARepository):
        return ReconciliationDecision(
            action=ReconcileAction.FULL_RECLONE,
            fetch=True,
            depth=settings.fetch_depth,
            ref_spec=target.ref_spec,
            reasons=[state.reason],
        )

    if normalize_remote_url(state.remote_url) != normalize_remote_url(desired_url):
        return ReconciliationDecision(
            action=ReconcileAction.FULL_RECLONE,
            fetch=True,
            depth=settings.fetch_depth,
            ref_spec=target.ref_spec,
            reasons=["remote URL differs"],
        )

    same_commit = state.head.lower() == target.commit.lower()
    same_lineage = state.fetched_ref == target.qualified_ref
    if same_lineage and target.checkout_branch:
        same_lineage = state.branch == target.checkout_branch
    mismatches = config_mismatches(settings, state)
    needs_fetch = not target.present_locally

    if same_commit and same_lineage and not state.dirty:
        if not mismatches:
            return ReconciliationDecision(
                action=ReconcileAction.REUSE,
                reasons=["checked-out commit and configuration already match"],
            )
        return ReconciliationDecision(
            action=ReconcileAction.CLEAN_RESET,
            reconfigure_only=True,
            reasons=mismatches,
        )

    reasons: list[str] = []
    if state.dirty:
        reasons.append("tracked files modified")
    if not same_lineage:
        reasons.append(f"ref changed from '{state.fetched_ref or state.branch or 'detached'}'")
    reasons.extend(mismatches)
    if reasons:
        return ReconciliationDecision(
            action=ReconcileAction.CLEAN_RESET,
            fetch=needs_fetch,
            depth=target.depth,
            ref_spec=target.ref_spec,
            reasons=reasons,
        )

    if needs_fetch and target.widened:
        return ReconciliationDecision(
            action=ReconcileAction.INCREMENTAL_UPDATE,
            fetch=True,
            depth=target.depth,
            ref_spec=target.ref_spec,
            reasons=["target is beyond the shallow history, fetch depth widened"],
        )

    return ReconciliationDecision(
        action=ReconcileAction.INCREMENTAL_UPDATE,
        fetch=needs_fetch,
        depth=target.depth,
        ref_spec=target.ref_spec,
        reasons=["target commit moved" if needs_fetch else "target commit already fetched"],
    )
