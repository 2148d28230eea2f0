from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .github.clone import ARCHIVE_DIR, CloneResult, CloneStatus
from .storage import BackupRun

LOG = logging.getLogger(__name__)


@dataclass
class AccountSummary:
    name: str
    active: List[str] = field(default_factory=list)
    archived: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.active) + len(self.archived)


def _subdirectories(path: Path) -> List[str]:
    if not path.is_dir():
        return []
    return sorted(child.name for child in path.iterdir() if child.is_dir())


def count_account(account_dir: Path) -> AccountSummary:
    """Count repositories from what is on disk; ``archive/`` holds the archived ones."""
    return AccountSummary(
        name=account_dir.name,
        active=[name for name in _subdirectories(account_dir) if name != ARCHIVE_DIR],
        archived=_subdirectories(account_dir / ARCHIVE_DIR),
    )


def disk_usage(path: Path) -> int:
    total = 0
    for root, _dirs, files in os.walk(path):
        for filename in files:
            try:
                total += os.lstat(os.path.join(root, filename)).st_size
            except OSError:
                continue
    return total


def human_size(num_bytes: float) -> str:
    """Format like ``du -h``: 512B, 4.0K, 1.2M, 3.4G."""
    for unit in ("B", "K", "M", "G", "T"):
        if num_bytes < 1024 or unit == "T":
            if unit == "B":
                return f"{int(num_bytes)}B"
            return f"{num_bytes:.1f}{unit}"
        num_bytes /= 1024
    return f"{num_bytes:.1f}P"  # pragma: no cover


def _account_block(summary: AccountSummary) -> List[str]:
    lines = [
        f"- {summary.name}/",
        f"  Active repositories: {len(summary.active)}",
        f"  Archived repositories: {len(summary.archived)}",
        f"  Total repositories: {summary.total}",
    ]
    if summary.active:
        lines.append("  Active repository names:")
        lines.extend(f"    - {name}" for name in summary.active)
    if summary.archived:
        lines.append("  Archived repository names:")
        lines.extend(f"    - {name} (archived)" for name in summary.archived)
    return lines


def _clone_statistics(results: Sequence[CloneResult], failed_accounts: Iterable[str]) -> List[str]:
    by_status = {status: [r for r in results if r.status is status] for status in CloneStatus}
    lines = [
        "Clone results:",
        f"  Cloned: {len(by_status[CloneStatus.CLONED])}",
        f"  Skipped (already present): {len(by_status[CloneStatus.SKIPPED])}",
        f"  Failed: {len(by_status[CloneStatus.FAILED])}",
    ]
    lines.extend(f"    - {r.account}/{r.name}: {r.error}" for r in by_status[CloneStatus.FAILED])
    missing = list(failed_accounts)
    if missing:
        lines.append("  Accounts not found or not accessible:")
        lines.extend(f"    - {name}" for name in missing)
    return lines


def render_summary(
    run: BackupRun,
    results: Sequence[CloneResult] = (),
    failed_accounts: Iterable[str] = (),
    generated_at: Optional[datetime] = None,
) -> str:
    generated_at = generated_at or datetime.now()
    lines = [
        "GitHub Repository Backup",
        "========================",
        f"Date: {generated_at.strftime('%a %b %d %H:%M:%S %Y')}",
        f"Backup folder: {run.date}",
        "",
        "Folders created:",
    ]

    orgs = [a for a in run.org_accounts if run.account_dir(a).is_dir()]
    if orgs:
        lines.extend(["", "Organization folders:"])
        for account in orgs:
            lines.extend(_account_block(count_account(run.account_dir(account))))

    personal = [a for a in run.personal_accounts if run.account_dir(a).is_dir()]
    if personal:
        lines.extend(["", "Personal folder:"])
        for account in personal:
            lines.extend(_account_block(count_account(run.account_dir(account))))

    lines.extend(["", "All folders in backup:"])
    for name in _subdirectories(run.workspace):
        if not run.clone_personal and name == run.username:
            continue
        lines.append(f"- {name}/")

    lines.append("")
    lines.extend(_clone_statistics(results, failed_accounts))

    lines.extend(["", "Total disk usage:", human_size(disk_usage(run.workspace))])
    return "\n".join(lines) + "\n"


def write_summary(
    run: BackupRun,
    results: Sequence[CloneResult] = (),
    failed_accounts: Iterable[str] = (),
    generated_at: Optional[datetime] = None,
) -> Path:
    LOG.info("Creating backup summary")
    run.summary_path.write_text(render_summary(run, results, failed_accounts, generated_at), encoding="utf-8")
    LOG.info("Backup summary written to %s", run.summary_path)
    return run.summary_path
