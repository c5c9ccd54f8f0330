"""Fetch settings model."""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_SERVER_URL = "https://github.com"

_SHA_RE = re.compile(r"^(?:[0-9a-fA-F]{40}|[0-9a-fA-F]{64})$")


def is_sha(value: str) -> bool:
    """Check if a value is a full SHA-1 or SHA-256 object id."""
    return bool(_SHA_RE.match(value))


class SubmoduleMode(str, Enum):
    """How submodules are brought into the working copy."""

    NONE = "none"
    SHALLOW = "shallow"  # Top-level submodules only
    RECURSIVE = "recursive"  # Nested submodules too

    @classmethod
    def parse(cls, value: Any) -> "SubmoduleMode":
        """Accept enum values plus the boolean-ish spellings used in workflow inputs."""
        if isinstance(value, cls):
            return value
        if value is None or value is False:
            return cls.NONE
        if value is True:
            return cls.SHALLOW
        text = str(value).strip().lower()
        if text in ("", "false", "no", "0"):
            return cls.NONE
        if text in ("true", "yes", "1"):
            return cls.SHALLOW
        return cls(text)


class FetchSettings(BaseModel):
    """Everything one invocation needs to know.

    Field interdependencies:
    - A non-empty ``commit`` takes precedence over ``ref`` as the checkout target;
      ``ref`` then only names the lineage (and local branch).
    - A ``ref`` that is itself a full SHA with no ``commit`` is treated as ``commit``.
    - ``fetch_depth`` of 0 means full history.
    - ``sparse_checkout_cone_mode`` only matters when ``sparse_checkout`` is non-empty.
    """

    repository_owner: str = Field(..., description="Repository owner (user or organization)")
    repository_name: str = Field(..., description="Repository name")
    ref: str = Field(default="", description="Branch, tag or pull request ref; empty for default branch")
    commit: str = Field(default="", description="Explicit commit SHA, overrides ref")
    repository_path: Path = Field(..., description="Local working copy path")
    auth_token: str = Field(default="", repr=False, exclude=True)
    clean: bool = Field(default=True, description="Allow discarding local modifications")
    filter: str = Field(default="", description="Partial clone filter, e.g. blob:none")
    sparse_checkout: list[str] = Field(default_factory=list)
    sparse_checkout_cone_mode: bool = True
    fetch_depth: int = Field(default=1, ge=0, description="Commits to fetch, 0 for all history")
    fetch_tags: bool = False
    show_progress: bool = False
    lfs: bool = False
    submodules: SubmoduleMode = SubmoduleMode.NONE
    set_safe_directory: bool = False
    persist_credentials: bool = False
    github_server_url: str = Field(default="", description="Server base URL, defaults to github.com")

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )

    @field_validator("submodules", mode="before")
    @classmethod
    def _parse_submodules(cls, value: Any) -> SubmoduleMode:
        return SubmoduleMode.parse(value)

    @field_validator("sparse_checkout", mode="before")
    @classmethod
    def _split_sparse_paths(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.splitlines()
        if value is None:
            return []
        return [p.strip() for p in value if p and p.strip()]

    @field_validator("ref", "commit", "filter", "github_server_url")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="before")
    @classmethod
    def _ref_as_commit(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        ref = str(data.get("ref", "") or "").strip()
        commit = str(data.get("commit", "") or "").strip()
        if ref and not commit and is_sha(ref):
            data = {**data, "commit": ref, "ref": ""}
        return data

    @model_validator(mode="after")
    def _check_commit(self) -> "FetchSettings":
        if self.commit and not is_sha(self.commit):
            raise ValueError(f"commit must be a full SHA, got '{self.commit}'")
        return self

    @property
    def server_url(self) -> str:
        """Server base URL without a trailing slash."""
        return (self.github_server_url or DEFAULT_SERVER_URL).rstrip("/")

    @property
    def repository(self) -> str:
        """Repository in ``owner/name`` form."""
        return f"{self.repository_owner}/{self.repository_name}"

    @property
    def nested_submodules(self) -> bool:
        return self.submodules == SubmoduleMode.RECURSIVE

    def with_changes(self, **changes: Any) -> "FetchSettings":
        """Return a copy with some fields replaced, re-running validation."""
        data = self.model_dump()
        data["auth_token"] = self.auth_token
        data.update(changes)
        return type(self).model_validate(data)

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> "FetchSettings":
        """Load settings from a YAML file. Keyword overrides win over file values."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        for key, value in overrides.items():
            if value is None:
                continue
            # Aliases win over field names during validation
            data.pop(to_camel(key), None)
            data[key] = value
        return cls.model_validate(data)
