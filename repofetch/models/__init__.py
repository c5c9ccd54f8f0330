"""Data models for repofetch."""

from repofetch.models.settings import DEFAULT_SERVER_URL, FetchSettings, SubmoduleMode, is_sha
from repofetch.models.state import (
    FetchResult,
    NotARepository,
    ReconcileAction,
    ReconciliationDecision,
    ResolvedTarget,
    WorkingCopyState,
)

__all__ = [
    # Settings
    "DEFAULT_SERVER_URL",
    "FetchSettings",
    "SubmoduleMode",
    "is_sha",
    # Observed and derived state
    "NotARepository",
    "WorkingCopyState",
    "ResolvedTarget",
    "ReconcileAction",
    "ReconciliationDecision",
    "FetchResult",
]
