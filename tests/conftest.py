"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Generator, Mapping, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

from repofetch.git.runner import ProcessResult
from repofetch.models.settings import FetchSettings

SHA_A = "a" * 40
SHA_B = "b" * 40
SHA_C = "c" * 40
REMOTE_URL = "https://github.com/octo/widgets"
EXTRAHEADER_KEY = "http.https://github.com/.extraheader"


def strip_git(args: Sequence[str]) -> list[str]:
    """Drop the git executable and leading ``-c key=value`` pairs."""
    rest = list(args)
    if rest and rest[0] == "git":
        rest = rest[1:]
    while len(rest) >= 2 and rest[0] == "-c":
        rest = rest[2:]
    return rest


@dataclass
class Rule:
    prefix: tuple[str, ...]
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    times: int | None = None
    effect: Callable[[list[str], Path | None], None] | None = None


@dataclass
class Call:
    args: list[str]
    cwd: Path | None
    env: dict[str, str] = field(default_factory=dict)

    @property
    def line(self) -> str:
        return " ".join(self.args)


class FakeRunner:
    """Scripted stand-in for AsyncProcessRunner.

    Rules match on a prefix of the git arguments (after ``-c`` pairs are
    stripped). The most recently added matching rule wins; unmatched commands
    succeed with empty output. ``git init <path>`` creates ``<path>/.git``.
    """

    def __init__(self) -> None:
        self.rules: list[Rule] = []
        self.calls: list[Call] = []
        self.raw_calls: list[list[str]] = []

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        times: int | None = None,
        effect: Callable[[list[str], Path | None], None] | None = None,
    ) -> "FakeRunner":
        self.rules.append(Rule(prefix, returncode, stdout, stderr, times, effect))
        return self

    def fail(self, *prefix: str, stderr: str = "fatal: error", returncode: int = 128, **kwargs) -> "FakeRunner":
        return self.on(*prefix, stderr=stderr, returncode=returncode, **kwargs)

    async def run(
        self,
        args: Sequence[str],
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> ProcessResult:
        git_args = strip_git(args)
        self.raw_calls.append(list(args))
        self.calls.append(Call(git_args, cwd, dict(env or {})))

        if git_args[:1] == ["init"]:
            (Path(git_args[-1]) / ".git").mkdir(parents=True, exist_ok=True)

        for rule in reversed(self.rules):
            if tuple(git_args[: len(rule.prefix)]) != rule.prefix:
                continue
            if rule.times is not None:
                if rule.times <= 0:
                    continue
                rule.times -= 1
            if rule.effect:
                rule.effect(git_args, cwd)
            return ProcessResult(list(args), rule.returncode, rule.stdout, rule.stderr)
        return ProcessResult(list(args), 0, "", "")

    @property
    def lines(self) -> list[str]:
        return [c.line for c in self.calls]

    def ran(self, *prefix: str) -> bool:
        return any(tuple(c.args[: len(prefix)]) == prefix for c in self.calls)

    def find(self, *prefix: str) -> list[Call]:
        return [c for c in self.calls if tuple(c.args[: len(prefix)]) == prefix]


def script_working_copy(
    runner: FakeRunner,
    path: Path,
    *,
    head: str = SHA_A,
    branch: str = "main",
    fetched_ref: str = "refs/heads/main",
    remote_url: str = REMOTE_URL,
    changes: Sequence[str] = (),
    shallow: bool = True,
    submodules: str = "none",
) -> None:
    """Make path look like a working copy and script the inspector's queries."""
    (path / ".git").mkdir(parents=True, exist_ok=True)
    (path / "README.md").write_text("hello\n")
    meta = f"repofetch.ref {fetched_ref}\nrepofetch.submodules {submodules}\n"
    runner.on("rev-parse", "--show-toplevel", stdout=f"{path}\n")
    runner.fail("config", "--local", "--get", returncode=1, stderr="")
    runner.on("config", "--local", "--get", "remote.origin.url", stdout=f"{remote_url}\n")
    runner.on("rev-parse", "--verify", "-q", "HEAD", stdout=f"{head}\n")
    runner.on("config", "--local", "--get-regexp", r"^repofetch\.", stdout=meta)
    runner.fail("config", "--local", "--get-regexp", r"^submodule\..*\.url$", returncode=1, stderr="")
    runner.on("status", stdout="".join(f" M {c}\n" for c in changes))
    runner.on("symbolic-ref", stdout=f"{branch}\n" if branch else "", returncode=0 if branch else 1)
    runner.on("rev-parse", "--is-shallow-repository", stdout="true\n" if shallow else "false\n")
    runner.on("rev-list", "--count", stdout="1\n")


def emulate_config(runner: FakeRunner, repo: Path, key: str = EXTRAHEADER_KEY) -> Path:
    """Let the fake runner edit .git/config the way git config would."""
    config = repo / ".git" / "config"
    if config.parent.is_dir():
        config.write_text("[core]\n\tbare = false\n")

    def set_value(args: list[str], cwd: Path | None) -> None:
        with config.open("a") as f:
            f.write(f"{args[-2]} = {args[-1]}\n")

    def unset(args: list[str], cwd: Path | None) -> None:
        target = Path(args[args.index("--file") + 1]) if "--file" in args else config
        if target.exists():
            lines = target.read_text().splitlines(keepends=True)
            target.write_text("".join(line for line in lines if not line.startswith(f"{args[-1]} =")))

    runner.on("config", "--local", key, effect=set_value)
    runner.on("config", "--local", "--unset-all", effect=unset)
    runner.on("config", "--file", effect=unset)
    return config


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def repo_path(temp_dir: Path) -> Path:
    return temp_dir / "work"


@pytest.fixture
def settings(repo_path: Path) -> FetchSettings:
    return FetchSettings(
        repository_owner="octo",
        repository_name="widgets",
        ref="main",
        repository_path=repo_path,
    )


@pytest.fixture
def mock_httpx_client():
    """Mock httpx client answering the repository endpoint."""
    mock_response = MagicMock()

    async def mock_get(url, **kwargs):
        mock_response.raise_for_status = MagicMock()
        mock_response.json = MagicMock(return_value={"default_branch": "trunk"})
        return mock_response

    mock_client = AsyncMock()
    mock_client.get = mock_get
    return mock_client


# Real git fixtures

def _git(*args: str, cwd: Path) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


class GitRemote:
    """A bare repository at ``<server>/owner/repo`` plus a seeding clone."""

    def __init__(self, root: Path) -> None:
        self.server = root / "server"
        self.bare = self.server / "owner" / "repo"
        self.seed = root / "seed"
        self.bare.mkdir(parents=True)
        self.seed.mkdir()
        _git("init", "--bare", "--initial-branch=main", str(self.bare), cwd=root)
        _git("init", "--initial-branch=main", cwd=self.seed)
        _git("remote", "add", "origin", str(self.bare), cwd=self.seed)

    @property
    def server_url(self) -> str:
        return f"file://{self.server}"

    def commit(self, files: dict[str, str], message: str = "update", branch: str = "main") -> str:
        """Commit files on branch and push it. Returns the new commit."""
        if _git("branch", "--list", branch, cwd=self.seed):
            _git("checkout", branch, cwd=self.seed)
        elif self._has_head():
            _git("checkout", "-b", branch, cwd=self.seed)
        for name, content in files.items():
            target = self.seed / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        _git("add", "-A", cwd=self.seed)
        _git("commit", "-m", message, cwd=self.seed)
        _git("push", "origin", branch, cwd=self.seed)
        return self.head(branch)

    def branch(self, name: str, start: str = "main") -> str:
        _git("branch", name, start, cwd=self.seed)
        _git("push", "origin", name, cwd=self.seed)
        return self.head(name)

    def tag(self, name: str, rev: str = "main", annotated: bool = False) -> None:
        if annotated:
            _git("tag", "-a", name, "-m", name, rev, cwd=self.seed)
        else:
            _git("tag", name, rev, cwd=self.seed)
        _git("push", "origin", name, cwd=self.seed)

    def head(self, ref: str = "main") -> str:
        return _git("rev-parse", f"refs/heads/{ref}", cwd=self.bare)

    def _has_head(self) -> bool:
        result = subprocess.run(
            ["git", "rev-parse", "--verify", "-q", "HEAD"], cwd=self.seed, capture_output=True
        )
        return result.returncode == 0


@pytest.fixture
def git_env(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate real git from the user's configuration."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.com")


@pytest.fixture
def git_remote(temp_dir: Path, git_env: None) -> GitRemote:
    """Bare remote with one commit on main."""
    remote = GitRemote(temp_dir)
    remote.commit({"README.md": "# repo\n"}, message="initial")
    return remote


def pytest_configure(config):
    config.addinivalue_line("markers", "mock: tests using a scripted git runner or mocked HTTP")
    config.addinivalue_line("markers", "integration: tests running real git against a local remote")
    config.addinivalue_line("markers", "slow: slow running tests")
