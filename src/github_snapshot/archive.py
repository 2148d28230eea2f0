from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from .github.clone import ARCHIVE_DIR
from .storage import BackupRun
from .summary import count_account, disk_usage, human_size

LOG = logging.getLogger(__name__)

PREVIEW_REPOSITORIES = 3

Which = Callable[[str], Optional[str]]
Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]


class ArchiveToolMissing(Exception):
    """Raised when neither ``zip`` nor ``tar`` is available on PATH."""


@dataclass
class ArchiveResult:
    source: Path
    path: Optional[Path] = None
    format: Optional[str] = None
    size: int = 0
    error: str = ""

    @property
    def created(self) -> bool:
        return self.path is not None


def should_exclude_personal(run: BackupRun) -> bool:
    return bool(not run.clone_personal and run.username and (run.workspace / run.username).is_dir())


def _zip_command(run: BackupRun, archive_name: str, exclude_personal: bool) -> List[str]:
    cmd = ["zip", "-r", "-q", archive_name, run.date, "-x", "*/.git/*", "*/.git"]
    if exclude_personal:
        cmd += [f"{run.date}/{run.username}/*", f"{run.date}/{run.username}"]
    return cmd


def _tar_command(run: BackupRun, archive_name: str, exclude_personal: bool) -> List[str]:
    cmd = ["tar", "-czf", archive_name, "--exclude=.git"]
    if exclude_personal:
        cmd.append(f"--exclude={run.date}/{run.username}")
    cmd.append(run.date)
    return cmd


def create_archive(
    run: BackupRun,
    exclude_personal: Optional[bool] = None,
    *,
    which: Which = shutil.which,
    runner: Runner = subprocess.run,
) -> ArchiveResult:
    """Compress the dated workspace next to itself, preferring zip over tar.gz.

    Missing tools and tool failures are reported on the result instead of raised.
    """
    if exclude_personal is None:
        exclude_personal = should_exclude_personal(run)
    result = ArchiveResult(source=run.workspace)

    try:
        fmt, cmd = _select_tool(run, exclude_personal, which)
    except ArchiveToolMissing as exc:
        LOG.warning("%s Archive not created.", exc)
        LOG.warning("You can manually compress the folder: %s", run.workspace)
        result.error = str(exc)
        return result

    archive_path = run.base_path / f"{run.date}{fmt}"
    if archive_path.exists():
        archive_path.unlink()

    LOG.info("Creating archive %s", archive_path)
    try:
        runner(cmd, cwd=str(run.base_path), check=True, capture_output=True)
    except (subprocess.CalledProcessError, OSError) as exc:
        stderr = getattr(exc, "stderr", None) or b""
        result.error = stderr.decode("utf-8", "ignore").strip() or str(exc)
        LOG.error("Archive creation failed: %s", result.error)
        LOG.warning("You can manually compress the folder: %s", run.workspace)
        return result

    result.path = archive_path
    result.format = fmt
    result.size = archive_path.stat().st_size if archive_path.exists() else 0
    LOG.info("Archive created successfully: %s (%s)", archive_path, human_size(result.size))
    return result


def _select_tool(run: BackupRun, exclude_personal: bool, which: Which) -> Tuple[str, List[str]]:
    if which("zip"):
        archive_name = f"{run.date}.zip"
        return ".zip", _zip_command(run, archive_name, exclude_personal)
    if which("tar"):
        LOG.info("zip command not found, using tar instead")
        archive_name = f"{run.date}.tar.gz"
        return ".tar.gz", _tar_command(run, archive_name, exclude_personal)
    raise ArchiveToolMissing("Neither zip nor tar found.")


def render_tree(workspace: Path) -> List[str]:
    lines = [f"{workspace.name}/"]
    for folder in sorted(p for p in workspace.iterdir() if p.is_dir()):
        lines.append(f"├── {folder.name}/")
        summary = count_account(folder)
        for name in summary.active[:PREVIEW_REPOSITORIES]:
            lines.append(f"│   ├── {name}/")
        hidden = len(summary.active) - PREVIEW_REPOSITORIES
        if hidden > 0:
            lines.append(f"│   ├── ... ({hidden} more active repositories)")
        if (folder / ARCHIVE_DIR).is_dir():
            lines.append(f"│   └── {ARCHIVE_DIR}/ ({len(summary.archived)} archived repositories)")
    return lines


def render_report(run: BackupRun, archive: ArchiveResult, finished_at: Optional[datetime] = None) -> str:
    finished_at = finished_at or datetime.now()
    rule = "=" * 44
    lines = [
        "",
        rule,
        "BACKUP COMPLETED!",
        rule,
        f"Date: {finished_at.strftime('%a %b %d %H:%M:%S %Y')}",
        f"Folder: {run.workspace}",
    ]
    if archive.created:
        lines.append(f"Archive: {archive.path}")
        lines.append(f"Archive size: {human_size(archive.size)}")
    else:
        lines.append(f"Archive: not created ({archive.error}); folder left uncompressed")
    lines.append(f"Folder size: {human_size(disk_usage(run.workspace))}")
    lines.extend(["", "Directory structure:"])
    lines.extend(render_tree(run.workspace))
    lines.append(rule)
    return "\n".join(lines)
