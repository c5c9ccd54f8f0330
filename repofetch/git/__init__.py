"""Git subprocess layer."""

from repofetch.git.commands import GitCommandManager
from repofetch.git.runner import AsyncProcessRunner, ProcessResult, ProcessRunner

__all__ = ["GitCommandManager", "AsyncProcessRunner", "ProcessResult", "ProcessRunner"]
