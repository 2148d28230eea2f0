from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional
from urllib.parse import urlparse, urlunparse

from .api import GitHubAPI, NotFoundError
from .repositories import Account, RepositoryRecord, iter_repositories

ARCHIVE_DIR = "archive"

LOG = logging.getLogger(__name__)

Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]


class CloneStatus(str, Enum):
    CLONED = "cloned"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CloneResult:
    account: str
    name: str
    status: CloneStatus
    path: Path
    archived: bool = False
    error: str = ""


def authenticated_url(url: str, token: str) -> str:
    """https://github.com/owner/repo.git -> https://<token>@github.com/owner/repo.git"""
    parts = urlparse(url)
    if parts.scheme != "https" or not token:
        return url
    host = parts.netloc.rsplit("@", 1)[-1]
    return urlunparse(parts._replace(netloc=f"{token}@{host}"))


def target_path(account_dir: Path, record: RepositoryRecord) -> Path:
    if record.archived:
        return account_dir / ARCHIVE_DIR / record.name
    return account_dir / record.name


def existing_clone(account_dir: Path, record: RepositoryRecord) -> Optional[Path]:
    """Return where ``record`` is already cloned, looking in both the active and ``archive/`` folders.

    A repository archived (or unarchived) since an earlier run keeps its old location.
    """
    active = account_dir / record.name
    archived = account_dir / ARCHIVE_DIR / record.name
    if record.archived:
        # ``<account>/archive`` is the archive folder itself, not a clone of a repository named "archive".
        candidates = (archived,) if record.name == ARCHIVE_DIR else (archived, active)
    else:
        candidates = (active, archived)
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def clone_repository(
    record: RepositoryRecord,
    account_dir: Path,
    token: str,
    *,
    timeout: Optional[float] = None,
    runner: Runner = subprocess.run,
) -> CloneResult:
    destination = target_path(account_dir, record)
    result = CloneResult(
        account=account_dir.name,
        name=record.name,
        status=CloneStatus.CLONED,
        path=destination,
        archived=record.archived,
    )

    if record.name == ARCHIVE_DIR and not record.archived:
        LOG.warning(
            "Repository %s of %s shares its name with the %s/ folder; archived repositories are counted inside it",
            record.name,
            account_dir.name,
            ARCHIVE_DIR,
        )

    existing = existing_clone(account_dir, record)
    if existing is not None:
        if existing == destination:
            LOG.info("Repository %s already exists in %s, skipping", record.name, existing.parent)
        else:
            LOG.info(
                "Repository %s already cloned at %s (archived state changed), skipping", record.name, existing
            )
        result.status = CloneStatus.SKIPPED
        result.path = existing
        result.archived = existing.parent == account_dir / ARCHIVE_DIR
        return result

    if record.archived:
        LOG.info("Repository %s is archived - placing in %s/", record.name, ARCHIVE_DIR)
    destination.parent.mkdir(parents=True, exist_ok=True)

    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    cmd = ["git", "clone", authenticated_url(record.clone_url, token), str(destination)]
    LOG.info("Cloning %s into %s", record.clone_url, destination)
    try:
        runner(cmd, env=env, check=True, capture_output=True, timeout=timeout)
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or b"").decode("utf-8", "ignore").strip()
        result.error = _redact(stderr or str(exc), token)
    except subprocess.TimeoutExpired:
        result.error = f"git clone timed out after {timeout:g}s"
    except OSError as exc:
        result.error = f"could not run git: {exc}"
    else:
        LOG.info("Successfully cloned %s to %s", record.name, destination.parent)
        return result

    LOG.error("Failed to clone %s: %s", record.name, result.error)
    result.status = CloneStatus.FAILED
    # A partial checkout would be mistaken for a finished clone on the next run.
    if destination.exists():
        shutil.rmtree(destination, ignore_errors=True)
    return result


def clone_account(
    api: GitHubAPI,
    account: Account,
    workspace: Path,
    token: str,
    *,
    timeout: Optional[float] = None,
    runner: Runner = subprocess.run,
) -> List[CloneResult]:
    """Enumerate every repository of ``account`` and clone it below ``workspace/<account>``.

    API errors propagate to the caller; per-repository clone failures do not.
    """
    account_dir = workspace / account.name
    account_dir.mkdir(parents=True, exist_ok=True)
    LOG.info("Cloning repositories for %s: %s", account.label, account.name)

    results: List[CloneResult] = []
    try:
        for record in iter_repositories(api, account):
            results.append(clone_repository(record, account_dir, token, timeout=timeout, runner=runner))
    except NotFoundError:
        if not any(account_dir.iterdir()):
            account_dir.rmdir()
        raise

    counts = {status: sum(1 for r in results if r.status is status) for status in CloneStatus}
    LOG.info(
        "Finished %s: %d cloned, %d skipped, %d failed",
        account.name,
        counts[CloneStatus.CLONED],
        counts[CloneStatus.SKIPPED],
        counts[CloneStatus.FAILED],
    )
    return results


def _redact(text: str, token: str) -> str:
    return text.replace(token, "***") if token else text
