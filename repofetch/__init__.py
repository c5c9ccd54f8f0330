"""repofetch - Reproducible git source fetching with working copy reuse."""

from repofetch.errors import (
    CredentialLeakGuardError,
    DirtyWorkingCopyError,
    GitCommandError,
    RefNotResolvableError,
    RepoFetchError,
)
from repofetch.models.settings import FetchSettings, SubmoduleMode
from repofetch.models.state import FetchResult, ReconcileAction
from repofetch.provider import SourceFetcher, get_source

__version__ = "0.1.0"
__all__ = [
    "SourceFetcher",
    "get_source",
    "FetchSettings",
    "SubmoduleMode",
    "FetchResult",
    "ReconcileAction",
    "RepoFetchError",
    "DirtyWorkingCopyError",
    "RefNotResolvableError",
    "GitCommandError",
    "CredentialLeakGuardError",
]
