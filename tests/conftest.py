from __future__ import annotations

import json
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from github_snapshot.github import Account, AccountKind, GitHubAPI
from github_snapshot.storage import BackupRun

API_HOST = "https://api.github.com/"
TOKEN = "ghp_testtoken1234567890"
RUN_DATE = datetime(2026, 10, 19, 12, 0, 0)


class FakeResponse:
    def __init__(
        self,
        payload: Any = None,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
    ) -> None:
        self._payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self.text = text if text is not None else json.dumps(payload)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Stands in for ``requests.Session``; routes are keyed by ``(path, page)``."""

    def __init__(self, routes: Optional[Dict[Tuple[str, Optional[int]], FakeResponse]] = None) -> None:
        self.headers: Dict[str, str] = {}
        self.routes = routes or {}
        self.calls: List[Tuple[str, Dict[str, Any], Any]] = []

    def get(self, url: str, params: Optional[Dict[str, Any]] = None, timeout: Any = None) -> FakeResponse:
        params = dict(params or {})
        self.calls.append((url, params, timeout))
        path = url[len(API_HOST):] if url.startswith(API_HOST) else url
        for key in ((path, params.get("page")), (path, None)):
            if key in self.routes:
                return self.routes[key]
        return FakeResponse([])


class FakeGit:
    """Records ``git clone`` invocations and creates the checkout directory."""

    def __init__(self, fail: Tuple[str, ...] = ()) -> None:
        self.calls: List[List[str]] = []
        self.kwargs: List[Dict[str, Any]] = []
        self.fail = set(fail)

    def __call__(self, cmd: List[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        target = Path(cmd[-1])
        (target / ".git").mkdir(parents=True)
        (target / "README.md").write_text(f"# {target.name}\n", encoding="utf-8")
        if target.name in self.fail:
            raise subprocess.CalledProcessError(
                128, cmd, output=b"", stderr=f"fatal: could not read from {cmd[2]}".encode()
            )
        return subprocess.CompletedProcess(cmd, 0, b"", b"")


def repo(name: str, archived: bool = False, owner: str = "acme", **extra: Any) -> Dict[str, Any]:
    payload = {
        "name": name,
        "full_name": f"{owner}/{name}",
        "clone_url": f"https://github.com/{owner}/{name}.git",
        "ssh_url": f"git@github.com:{owner}/{name}.git",
        "archived": archived,
    }
    payload.update(extra)
    return payload


def repos(prefix: str, count: int, owner: str = "acme") -> List[Dict[str, Any]]:
    return [repo(f"{prefix}{i:03d}", owner=owner) for i in range(count)]


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def api(session: FakeSession) -> GitHubAPI:
    return GitHubAPI(TOKEN, session=session)


@pytest.fixture
def git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def make_run(tmp_path: Path):
    def _make_run(
        orgs: Tuple[str, ...] = ("acme",),
        username: Optional[str] = "alice",
        clone_orgs: bool = True,
        clone_personal: bool = True,
    ) -> BackupRun:
        workspace = tmp_path / RUN_DATE.strftime("%Y-%m-%d")
        workspace.mkdir(parents=True, exist_ok=True)
        accounts = [Account(o, AccountKind.ORG) for o in orgs] if clone_orgs else []
        if clone_personal and username:
            accounts.append(Account(username, AccountKind.USER))
        return BackupRun(
            date=workspace.name,
            base_path=tmp_path,
            workspace=workspace,
            accounts=tuple(accounts),
            clone_orgs=clone_orgs,
            clone_personal=clone_personal,
            username=username,
        )

    return _make_run


def make_dirs(root: Path, *names: str) -> None:
    for name in names:
        (root / name).mkdir(parents=True, exist_ok=True)
