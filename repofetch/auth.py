"""Scoped authentication for git network operations.

The token is written into the working copy's local config as an
``http.<server>/.extraheader`` entry for the duration of a scope and removed on
every exit path. The value is first written as a placeholder through
``git config`` and then substituted in the file, so the secret never shows up
on a command line.

Processes that cannot see the local config (``ls-remote`` before a clone exists,
submodule clones) get the header through ``GIT_CONFIG_*`` environment entries
instead, which live only as long as the process.
"""

from __future__ import annotations

import base64
import logging
import shlex
from pathlib import Path
from types import TracebackType

from repofetch.errors import CredentialLeakGuardError, RepoFetchError
from repofetch.git.commands import GitCommandManager
from repofetch.models.settings import FetchSettings

logger = logging.getLogger(__name__)

PLACEHOLDER = "AUTHORIZATION: basic ***"


def extraheader_key(settings: FetchSettings) -> str:
    return f"http.{settings.server_url}/.extraheader"


def encode_credential(token: str) -> str:
    return base64.b64encode(f"x-access-token:{token}".encode()).decode()


def header_value(token: str) -> str:
    return f"AUTHORIZATION: basic {encode_credential(token)}"


def credential_environment(settings: FetchSettings) -> dict[str, str]:
    """Environment entries that give a single git process the auth header."""
    if not settings.auth_token:
        return {}
    return {
        "GIT_CONFIG_COUNT": "1",
        "GIT_CONFIG_KEY_0": extraheader_key(settings),
        "GIT_CONFIG_VALUE_0": header_value(settings.auth_token),
    }


class CredentialScopeManager:
    """Async context manager holding the auth header in the local git config."""

    def __init__(
        self,
        git: GitCommandManager,
        settings: FetchSettings,
        *,
        include_submodules: bool = False,
    ) -> None:
        self.git = git
        self.settings = settings
        self.include_submodules = include_submodules
        self.key = extraheader_key(settings)
        self._configured = False

    @property
    def token(self) -> str:
        return self.settings.auth_token

    def environment(self) -> dict[str, str]:
        return credential_environment(self.settings)

    async def __aenter__(self) -> "CredentialScopeManager":
        if self.token:
            await self.configure()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self._configured:
            return
        if self.settings.persist_credentials:
            logger.info("Leaving credentials in local git config (persist-credentials)")
            return
        await self.remove()

    async def configure(self) -> None:
        """Write the auth header into the local config."""
        self._configured = True
        await self.git.config_unset(self.key)
        await self.git.config_set(self.key, PLACEHOLDER)
        self._replace_placeholder(self.git.git_dir / "config")
        logger.debug(f"Configured auth header for {self.settings.server_url}")

    async def configure_submodules(self) -> None:
        """Persist the auth header into every initialized submodule config."""
        if not self.token:
            return
        command = (
            f"git config --local --unset-all {shlex.quote(self.key)} || :; "
            f"git config --local {shlex.quote(self.key)} {shlex.quote(PLACEHOLDER)}"
        )
        await self.git.submodule_foreach(command, recursive=self.settings.nested_submodules)
        for path in self._submodule_config_files():
            self._replace_placeholder(path, required=False)

    async def remove(self) -> None:
        """Remove the auth header and confirm no secret is left on disk."""
        await self.git.config_unset(self.key)
        if self.include_submodules:
            for path in self._submodule_config_files():
                await self.git.config_unset(self.key, file=path)
        self._configured = False
        self.verify_removed()

    def verify_removed(self) -> None:
        """Raise CredentialLeakGuardError if a config file still holds the secret."""
        if not self.token:
            return
        secrets = (encode_credential(self.token), self.token)
        for path in [self.git.git_dir / "config", *self._submodule_config_files()]:
            try:
                content = path.read_text()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Cannot read {path} to confirm credential removal: {e}")
                raise CredentialLeakGuardError(str(path)) from e
            if any(secret in content for secret in secrets):
                raise CredentialLeakGuardError(str(path))

    def _replace_placeholder(self, config_path: Path, *, required: bool = True) -> None:
        content = config_path.read_text()
        if PLACEHOLDER not in content:
            if required:
                raise RepoFetchError(f"Unable to find auth placeholder in {config_path}")
            return
        config_path.write_text(content.replace(PLACEHOLDER, header_value(self.token)))

    def _submodule_config_files(self) -> list[Path]:
        modules = self.git.git_dir / "modules"
        if not modules.is_dir():
            return []
        return sorted(p for p in modules.rglob("config") if p.is_file())
