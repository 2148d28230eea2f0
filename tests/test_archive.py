from __future__ import annotations

import subprocess
from pathlib import Path

from github_snapshot.archive import create_archive, render_report, render_tree, should_exclude_personal

from conftest import RUN_DATE, make_dirs


class FakeArchiver:
    def __init__(self, fail: bool = False) -> None:
        self.calls = []
        self.fail = fail

    def __call__(self, cmd, cwd=None, **kwargs):
        self.calls.append((cmd, cwd))
        if self.fail:
            raise subprocess.CalledProcessError(12, cmd, output=b"", stderr=b"zip error: Nothing to do!")
        Path(cwd, cmd[2] if cmd[0] == "tar" else cmd[3]).write_bytes(b"PK" * 100)
        return subprocess.CompletedProcess(cmd, 0, b"", b"")


def only(*tools):
    return lambda name: f"/usr/bin/{name}" if name in tools else None


def test_zip_is_preferred(make_run):
    run = make_run()
    archiver = FakeArchiver()

    result = create_archive(run, which=only("zip", "tar"), runner=archiver)

    cmd, cwd = archiver.calls[0]
    assert cmd[:5] == ["zip", "-r", "-q", f"{run.date}.zip", run.date]
    assert "*/.git/*" in cmd
    assert cwd == str(run.base_path)
    assert result.created
    assert result.format == ".zip"
    assert result.path == run.base_path / f"{run.date}.zip"
    assert result.size == 200


def test_tar_fallback(make_run):
    run = make_run()
    archiver = FakeArchiver()

    result = create_archive(run, which=only("tar"), runner=archiver)

    cmd, _cwd = archiver.calls[0]
    assert cmd == ["tar", "-czf", f"{run.date}.tar.gz", "--exclude=.git", run.date]
    assert result.path == run.base_path / f"{run.date}.tar.gz"


def test_missing_tools_are_reported_not_raised(make_run):
    run = make_run()
    archiver = FakeArchiver()

    result = create_archive(run, which=only(), runner=archiver)

    assert not result.created
    assert result.error == "Neither zip nor tar found."
    assert result.source == run.workspace
    assert archiver.calls == []


def test_tool_failure_is_reported(make_run):
    run = make_run()

    result = create_archive(run, which=only("zip"), runner=FakeArchiver(fail=True))

    assert not result.created
    assert "Nothing to do" in result.error


def test_personal_folder_excluded_when_personal_disabled(make_run):
    run = make_run(username="alice", clone_personal=False)
    make_dirs(run.workspace, "acme/api", "alice/dotfiles")
    archiver = FakeArchiver()

    assert should_exclude_personal(run)
    create_archive(run, which=only("zip"), runner=archiver)
    zip_cmd = archiver.calls[0][0]
    create_archive(run, which=only("tar"), runner=archiver)
    tar_cmd = archiver.calls[1][0]

    assert f"{run.date}/alice/*" in zip_cmd
    assert f"--exclude={run.date}/alice" in tar_cmd


def test_personal_folder_kept_when_personal_enabled(make_run):
    run = make_run(username="alice", clone_personal=True)
    make_dirs(run.workspace, "alice/dotfiles")

    assert not should_exclude_personal(run)


def test_existing_archive_is_replaced(make_run):
    run = make_run()
    stale = run.base_path / f"{run.date}.zip"
    stale.write_bytes(b"stale")

    result = create_archive(run, which=only("zip"), runner=FakeArchiver())

    assert result.size == 200


def test_render_tree(make_run):
    run = make_run()
    make_dirs(
        run.workspace,
        "acme/a",
        "acme/b",
        "acme/c",
        "acme/d",
        "acme/e",
        "acme/archive/x",
        "acme/archive/y",
        "alice/dotfiles",
    )

    lines = render_tree(run.workspace)

    assert lines == [
        f"{run.date}/",
        "├── acme/",
        "│   ├── a/",
        "│   ├── b/",
        "│   ├── c/",
        "│   ├── ... (2 more active repositories)",
        "│   └── archive/ (2 archived repositories)",
        "├── alice/",
        "│   ├── dotfiles/",
    ]


def test_render_report_mentions_archive_and_folder(make_run):
    run = make_run()
    make_dirs(run.workspace, "acme/api")
    result = create_archive(run, which=only("zip"), runner=FakeArchiver())

    report = render_report(run, result, RUN_DATE)

    assert "BACKUP COMPLETED!" in report
    assert f"Archive: {result.path}" in report
    assert "Archive size: 200B" in report
    assert "│   ├── api/" in report


def test_render_report_without_archive(make_run):
    run = make_run()
    result = create_archive(run, which=only(), runner=FakeArchiver())

    report = render_report(run, result, RUN_DATE)

    assert "not created" in report
    assert f"Folder: {run.workspace}" in report
