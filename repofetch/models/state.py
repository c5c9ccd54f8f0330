"""Working copy state and reconciliation models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from repofetch.models.settings import SubmoduleMode


class NotARepository(BaseModel):
    """The target path holds nothing that can be reused."""

    path: str
    reason: str

    model_config = ConfigDict(frozen=True)


class WorkingCopyState(BaseModel):
    """Snapshot of an existing working copy, read fresh on every invocation."""

    path: str
    remote_url: str = Field(..., description="URL configured for origin")
    head: str = Field(..., description="Checked-out commit")
    branch: str = Field(default="", description="Current branch, empty when detached")
    fetched_ref: str = Field(default="", description="Qualified ref recorded by the last fetch")
    dirty: bool = Field(default=False, description="Tracked files modified or staged")
    changes: list[str] = Field(default_factory=list, description="Modified tracked paths")
    shallow: bool = False
    sparse_enabled: bool = False
    sparse_cone: bool = False
    sparse_paths: list[str] = Field(default_factory=list)
    submodules: SubmoduleMode = SubmoduleMode.NONE
    initialized_submodules: list[str] = Field(default_factory=list)
    lfs: bool = False
    filter: str = ""
    auth_headers: list[str] = Field(
        default_factory=list, description="http.*.extraheader keys left in the local config"
    )

    model_config = ConfigDict(frozen=True)

    @property
    def is_detached(self) -> bool:
        return not self.branch


class ResolvedTarget(BaseModel):
    """Concrete commit and fetch parameters for the requested ref."""

    commit: str
    qualified_ref: str = Field(default="", description="e.g. refs/heads/main, empty for a bare commit")
    checkout_branch: str = Field(default="", description="Local branch to create, empty for detached")
    tracking_ref: str = Field(default="", description="Local ref the fetched commit is stored under")
    ref_spec: list[str] = Field(default_factory=list)
    fallback_ref_spec: list[str] = Field(
        default_factory=list, description="Symbolic refspec used when SHA fetches are refused"
    )
    depth: int = 0
    remote_tip: str = Field(default="", description="Commit the remote advertises for the ref")
    present_locally: bool = False
    widened: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_branch(self) -> bool:
        return bool(self.checkout_branch)


class ReconcileAction(str, Enum):
    """What the executor must do to reach the desired state."""

    REUSE = "reuse"
    INCREMENTAL_UPDATE = "incremental_update"
    CLEAN_RESET = "clean_reset"
    FULL_RECLONE = "full_reclone"


class ReconciliationDecision(BaseModel):
    """Outcome of comparing desired settings with the observed working copy."""

    action: ReconcileAction
    fetch: bool = Field(default=False, description="Whether a network fetch is needed")
    depth: int = 0
    ref_spec: list[str] = Field(default_factory=list)
    reconfigure_only: bool = False
    reasons: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def is_destructive(self) -> bool:
        """Whether the action may discard files on disk."""
        return self.action in (ReconcileAction.CLEAN_RESET, ReconcileAction.FULL_RECLONE)


class FetchResult(BaseModel):
    """What a completed invocation did."""

    path: str
    action: ReconcileAction
    commit: str
    ref: str = ""
    warnings: list[str] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)
