"""Exceptions raised while fetching a repository."""

from __future__ import annotations

import re
import subprocess
from typing import Sequence

_EXTRAHEADER_RE = re.compile(r"(AUTHORIZATION:\s*\w+\s+)\S+", re.IGNORECASE)
_URL_USERINFO_RE = re.compile(r"(\w+://)[^/@\s]+@")


def redact(text: str, secrets: Sequence[str] = ()) -> str:
    """Strip auth headers, URL credentials and known secret values from text."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    text = _EXTRAHEADER_RE.sub(r"\1***", text)
    return _URL_USERINFO_RE.sub(r"\1***@", text)


class RepoFetchError(Exception):
    """Base class for all repofetch failures."""


class DirtyWorkingCopyError(RepoFetchError):
    """The working copy has local modifications and cleaning is disabled."""

    def __init__(self, path: str, changes: Sequence[str] = ()) -> None:
        self.path = path
        self.changes = list(changes)
        listing = ", ".join(self.changes[:5])
        if len(self.changes) > 5:
            listing += f", ... ({len(self.changes)} total)"
        message = (
            f"Working copy at {path} has local modifications and 'clean' is disabled. "
            "Enable clean to discard them."
        )
        if listing:
            message += f" Modified: {listing}"
        super().__init__(message)


class RefNotResolvableError(RepoFetchError):
    """The requested ref or commit does not exist on the remote."""

    def __init__(self, ref: str, url: str, detail: str = "") -> None:
        self.ref = ref
        self.url = url
        message = f"Reference '{ref}' could not be resolved in {redact(url)}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class GitCommandError(RepoFetchError, subprocess.CalledProcessError):
    """A git subprocess exited with a non-zero status.

    Command line and captured output are redacted before they are stored.
    """

    def __init__(
        self,
        args: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        secrets: Sequence[str] = (),
    ) -> None:
        safe_args = [redact(str(a), secrets) for a in args]
        subprocess.CalledProcessError.__init__(
            self,
            returncode,
            safe_args,
            redact(stdout, secrets),
            redact(stderr, secrets),
        )

    def __str__(self) -> str:
        detail = (self.stderr or self.stdout or "").strip()
        message = f"'{' '.join(self.cmd)}' failed with exit code {self.returncode}"
        if detail:
            message += f": {detail[-500:]}"
        return message


class CredentialLeakGuardError(RepoFetchError):
    """A credential could not be confirmed removed from the git configuration."""

    def __init__(self, config_path: str) -> None:
        self.config_path = config_path
        super().__init__(
            f"Authentication header is still present in {config_path} after cleanup; "
            "refusing to leave a secret on disk"
        )
